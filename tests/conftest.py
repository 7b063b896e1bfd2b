import os
import pytest

from contract_lifecycle import create_app
from contract_lifecycle.models import db as _db
from contract_lifecycle.services.lifecycle import get_lifecycle
from helpers import TOKEN_ARTIFACT

@pytest.fixture(scope="session")
def app():
    os.environ["FLASK_ENV"] = "testing"
    app = create_app("testing")
    with app.app_context():
        _db.create_all()
        yield app
        _db.drop_all()

@pytest.fixture()
def client(app):
    return app.test_client()

@pytest.fixture()
def runner(app):
    return app.test_cli_runner()

@pytest.fixture(autouse=True)
def clean_state(request):
    """Empty the registry and drop cached drivers after every test that used the app."""
    yield
    if "app" not in request.fixturenames:
        return
    _db.session.rollback()
    for table in reversed(_db.metadata.sorted_tables):
        _db.session.execute(table.delete())
    _db.session.commit()
    get_lifecycle().reset_drivers()

@pytest.fixture()
def lifecycle(app, tmp_path):
    lc = get_lifecycle(app)
    original = lc.compiler.storage_path
    lc.compiler.storage_path = tmp_path / "artifacts"
    yield lc
    lc.compiler.storage_path = original

@pytest.fixture()
def driver(lifecycle):
    """The MockDriver behind the default test network."""
    return lifecycle.driver("local")

@pytest.fixture()
def token(lifecycle):
    return lifecycle.deploy({"name": "Token", "version": "1.0.0", "artifact": TOKEN_ARTIFACT}).contract

@pytest.fixture()
def upgradeable_token(lifecycle):
    """(proxy, implementation) for Token@1.0.0."""
    pair = lifecycle.create_upgradeable_contract({"name": "Token", "version": "1.0.0", "artifact": TOKEN_ARTIFACT})
    return pair["proxy"], pair["implementation"]

# contract_lifecycle/models/__init__.py
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

def init_app(app):
    app.config.setdefault("SQLALCHEMY_TRACK_MODIFICATIONS", False)
    db.init_app(app)
    migrate.init_app(app, db)

# model imports register the tables on db.metadata
from .contract import ContractVersion  # noqa
from .transaction import ContractTransaction  # noqa
from .job import LifecycleJob  # noqa

__all__ = ["db", "migrate", "ContractVersion", "ContractTransaction", "LifecycleJob"]

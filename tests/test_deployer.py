import pytest

from contract_lifecycle.exceptions import (
    ArtifactNotFound,
    DeploymentFailed,
    DriverUnavailable,
    ParameterCountMismatch,
)
from contract_lifecycle.models import ContractTransaction, ContractVersion
from helpers import COUNTER_ARTIFACT, HOLDER, TOKEN_ABI, TOKEN_ARTIFACT, TOKEN_BYTECODE


def test_deploy_records_contract_and_constructor_tx(lifecycle, driver):
    deployment = lifecycle.deploy({
        "name": "Counter", "version": "1.0.0", "artifact": COUNTER_ARTIFACT, "constructor_params": [5],
    })
    rec = deployment.contract
    assert rec.status == "deployed"
    assert rec.address in driver.contracts
    assert rec.kind == "mock"
    assert rec.network == "local"
    assert rec.constructor_params == [5]
    assert rec.resource_used > 21000
    assert rec.bytecode_hash.startswith("0x") and len(rec.bytecode_hash) == 66
    assert rec.deployed_at is not None

    tx = deployment.transaction
    assert tx.method_name == "constructor"
    assert tx.status == "success"
    assert tx.confirmed_at is not None
    assert tx.to_address == rec.address
    assert tx.block_number == driver.get_transaction_receipt(deployment.transaction_hash)["blockNumber"]


def test_deploy_then_read_uses_stored_abi(lifecycle, driver):
    rec = lifecycle.deploy({"name": "Token", "version": "1.0.0", "artifact": TOKEN_ARTIFACT}).contract
    assert rec.abi == TOKEN_ABI
    assert lifecycle.call(rec, "balanceOf", [HOLDER]) == "1000000000000000000"
    # reads never write a transaction row
    assert ContractTransaction.query.filter_by(method_name="balanceOf").count() == 0


def test_stored_artifact_is_used(lifecycle, driver):
    lifecycle.compiler.store_artifacts("Token", "2.0.0", TOKEN_ARTIFACT)
    rec = lifecycle.deploy({"name": "Token", "version": "2.0.0"}).contract
    assert rec.status == "deployed"
    assert rec.full_identifier == "Token@2.0.0"


def test_missing_artifact(lifecycle):
    with pytest.raises(ArtifactNotFound):
        lifecycle.deploy({"name": "Ghost", "version": "1.0.0"})
    assert ContractVersion.query.count() == 0


def test_constructor_arity_checked_before_any_row(lifecycle):
    with pytest.raises(ParameterCountMismatch):
        lifecycle.deploy({"name": "Counter", "artifact": COUNTER_ARTIFACT, "constructor_params": []})
    assert ContractVersion.query.count() == 0


def test_driver_error_marks_row_failed(lifecycle, driver):
    driver.fail_on.add("deploy")
    with pytest.raises(DeploymentFailed) as err:
        lifecycle.deploy({"name": "Token", "version": "1.0.0", "artifact": TOKEN_ARTIFACT})

    rec = err.value.contract
    assert rec.status == "failed"
    assert rec.address is None
    assert "mock deploy failure" in rec.meta["error"]
    assert isinstance(err.value.__cause__, RuntimeError)


def test_unavailable_driver(lifecycle, driver):
    driver.available = False
    with pytest.raises(DriverUnavailable):
        lifecycle.deploy({"name": "Token", "artifact": TOKEN_ARTIFACT})


def test_explicit_gas_limit_is_passed_through(lifecycle, driver, monkeypatch):
    seen = {}
    original = driver.deploy_contract

    def spy(params):
        seen.update(params)
        return original(params)

    monkeypatch.setattr(driver, "deploy_contract", spy)
    lifecycle.deploy({"name": "Token", "artifact": TOKEN_ARTIFACT, "gas_limit": 4000000})
    assert seen["gas_limit"] == 4000000


def test_estimation_failure_falls_back_to_default(lifecycle, driver, monkeypatch):
    seen = {}
    original = driver.deploy_contract
    monkeypatch.setattr(driver, "deploy_contract", lambda p: seen.update(p) or original(p))
    driver.fail_on.add("estimate")

    lifecycle.deploy({"name": "Token", "artifact": TOKEN_ARTIFACT})
    assert seen["gas_limit"] == lifecycle.settings.default_gas_limit


def test_estimation_transport_error_marks_row_failed(lifecycle, driver, monkeypatch):
    def unreachable(tx):
        raise ConnectionError("node went away")

    monkeypatch.setattr(driver, "estimate_gas", unreachable)
    with pytest.raises(DeploymentFailed) as err:
        lifecycle.deploy({"name": "Token", "version": "1.0.0", "artifact": TOKEN_ARTIFACT})

    rec = err.value.contract
    assert rec.status == "failed"
    assert "node went away" in rec.meta["error"]
    assert ContractVersion.query.filter_by(status="pending").count() == 0
    assert driver.contracts == {}


def test_preview_is_idempotent_and_side_effect_free(lifecycle, driver):
    params = {"artifact": COUNTER_ARTIFACT, "constructor_params": [1]}
    first = lifecycle.preview_deployment("Counter", params)
    second = lifecycle.preview_deployment("Counter", params)

    assert first == second
    assert first["bytecode_size"] == (len(COUNTER_ARTIFACT["bytecode"]) - 2) // 2
    expected_gas = int(driver.estimate_gas({"data": COUNTER_ARTIFACT["bytecode"], "args": [1]}) * 1.1)
    assert first["gas_limit"] == expected_gas
    assert first["estimated_cost_wei"] == str(expected_gas * driver.gas_price)
    assert ContractVersion.query.count() == 0
    assert driver.contracts == {}


def test_preview_does_not_store_compiled_artifacts(lifecycle, monkeypatch):
    monkeypatch.setattr(
        lifecycle.compiler, "compile",
        lambda source, name, version=None: {"abi": TOKEN_ABI, "bytecode": TOKEN_BYTECODE, "version_arg": version},
    )
    preview = lifecycle.preview_deployment("Token", {"source_code": "contract Token {}", "version": "1.0.0"})
    assert preview["bytecode_size"] > 0
    assert not lifecycle.compiler.storage_path.exists()

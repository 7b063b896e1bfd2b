import json

from contract_lifecycle.models import ContractVersion
from helpers import HOLDER, TOKEN_ARTIFACT


def test_deploy_preview_and_status(runner, lifecycle, driver):
    lifecycle.compiler.store_artifacts("Token", "1.0.0", TOKEN_ARTIFACT)

    result = runner.invoke(args=["contracts", "deploy", "Token", "--version", "1.0.0", "--preview", "--json"])
    assert result.exit_code == 0, result.output
    preview = json.loads(result.output)
    assert preview["contract_name"] == "Token"
    assert driver.contracts == {}

    result = runner.invoke(args=["contracts", "deploy", "Token", "--version", "1.0.0"])
    assert result.exit_code == 0, result.output
    assert "Deployed Token@1.0.0 at 0x" in result.output

    result = runner.invoke(args=["contracts", "status", "Token@1.0.0"])
    assert result.exit_code == 0
    assert "Token@1.0.0 [deployed] on local" in result.output
    assert "constructor" in result.output


def test_call_read_and_write(runner, lifecycle):
    lifecycle.deploy({"name": "Token", "version": "1.0.0", "artifact": TOKEN_ARTIFACT})

    result = runner.invoke(args=["contracts", "call", "Token", "balanceOf", "--params", HOLDER])
    assert result.exit_code == 0
    assert result.output.strip() == "1000000000000000000"

    result = runner.invoke(args=["contracts", "call", "Token", "mint", "--params", "[5]", "--wait"])
    assert result.exit_code == 0
    assert result.output.startswith("confirmed_success: 0x")


def test_errors_exit_non_zero(runner, lifecycle):
    result = runner.invoke(args=["contracts", "deploy", "Ghost"])
    assert result.exit_code != 0
    assert "ArtifactNotFound" in result.output

    lifecycle.deploy({"name": "Token", "version": "1.0.0", "artifact": TOKEN_ARTIFACT})
    result = runner.invoke(args=["contracts", "call", "Token", "transfer", "--params", HOLDER])
    assert result.exit_code != 0
    assert "expects 2 parameters, but 1 provided" in result.output


def test_upgrade_rollback_and_reconcile(runner, lifecycle):
    lifecycle.compiler.store_artifacts("Token", "1.0.0", TOKEN_ARTIFACT)
    lifecycle.compiler.store_artifacts("Token", "1.0.1", TOKEN_ARTIFACT)

    assert runner.invoke(args=["contracts", "deploy", "Token", "--upgradeable"]).exit_code == 0

    result = runner.invoke(args=["contracts", "upgrade", "Token@1.0.0", "1.0.1"])
    assert result.exit_code == 0, result.output
    assert "Upgraded Token@1.0.0 -> Token@1.0.1" in result.output

    result = runner.invoke(args=["contracts", "rollback", "Token@1.0.1"])
    assert result.exit_code == 0, result.output
    assert "-> Token@1.0.0" in result.output

    result = runner.invoke(args=["contracts", "reconcile"])
    assert result.exit_code == 0
    assert "All proxies consistent" in result.output


def test_watch_with_duration(runner, lifecycle, tmp_path):
    result = runner.invoke(args=["contracts", "watch", "--path", str(tmp_path), "--interval", "0.05", "--duration", "0.1"])
    assert result.exit_code == 0
    assert "Watching" in result.output


def test_contract_smoke_test_deprecates_its_deployment(runner, lifecycle, driver):
    lifecycle.compiler.store_artifacts("Token", "1.0.0", TOKEN_ARTIFACT)

    result = runner.invoke(args=["contracts", "test", "Token", "--json"])
    assert result.exit_code == 0, result.output
    report = json.loads(result.output)
    assert report["failed"] == 0
    assert [t["name"] for t in report["tests"]] == ["deployment", "abi_validation", "call:totalSupply"]
    assert report["tests"][2]["result"] == "1000000000000000000000"

    rec = ContractVersion.query.filter_by(name="Token").one()
    assert rec.version.startswith("test-")
    assert rec.status == "deprecated"
    assert rec.address in driver.contracts


def test_contract_smoke_test_reports_failed_reads(runner, lifecycle, driver):
    lifecycle.compiler.store_artifacts("Token", "1.0.0", TOKEN_ARTIFACT)
    driver.fail_on.add("call")

    result = runner.invoke(args=["contracts", "test", "Token"])
    assert result.exit_code == 1
    assert "FAIL call:totalSupply" in result.output
    assert "Passed: 2  Failed: 1" in result.output


def test_contract_smoke_test_without_artifact(runner, lifecycle):
    result = runner.invoke(args=["contracts", "test", "Ghost"])
    assert result.exit_code != 0
    assert "ArtifactNotFound" in result.output
    assert ContractVersion.query.count() == 0

import pytest

from contract_lifecycle.exceptions import (
    ArtifactNotFound,
    ContractLifecycleError,
    DeploymentFailed,
    NoPreviousVersionFound,
    NoProxyFound,
    ParameterCountMismatch,
    PartialUpgradeError,
    ProxyNotFound,
    SubmissionFailed,
    TargetVersionNotFound,
)


def test_parameter_count_mismatch_names_counts():
    e = ParameterCountMismatch("transfer", 2, 1)
    assert e.expected == 2 and e.actual == 1
    assert str(e) == "Method 'transfer' expects 2 parameters, but 1 provided"
    assert isinstance(e, ValueError)


def test_specific_lookups_are_caught_by_their_family():
    with pytest.raises(NoProxyFound):
        raise ProxyNotFound("gone")
    with pytest.raises(NoPreviousVersionFound):
        raise TargetVersionNotFound("9.9.9")


@pytest.mark.parametrize("exc,code", [
    (ArtifactNotFound("x"), 404),
    (ProxyNotFound("x"), 404),
    (NoProxyFound("x"), 409),
    (DeploymentFailed("x"), 502),
])
def test_status_codes(exc, code):
    assert isinstance(exc, ContractLifecycleError)
    assert exc.status_code == code


def test_submission_failed_wraps_operation():
    e = SubmissionFailed("send Token@1.0.0.transfer", RuntimeError("nonce too low"))
    assert e.operation == "send Token@1.0.0.transfer"
    assert "nonce too low" in str(e)


def test_partial_upgrade_error_names_step():
    e = PartialUpgradeError("migration", "boom", transaction_hash="0xabc")
    assert e.step == "migration"
    assert str(e) == "[migration] boom"
    assert e.transaction_hash == "0xabc"

import pytest

from contract_lifecycle.exceptions import (
    DeploymentFailed,
    NoPreviousVersionFound,
    NoProxyFound,
    NotUpgradeable,
    PartialUpgradeError,
    ProxyNotFound,
    TargetVersionNotFound,
)
from contract_lifecycle.models import ContractTransaction, ContractVersion
from contract_lifecycle.services import registry
from contract_lifecycle.services.upgrader import PROXY_ABI, load_migration
from helpers import TOKEN_ARTIFACT

MIGRATED = []


def record_migration(old, new):
    MIGRATED.append((old.version, new.version))


def _snapshot(driver):
    return (
        ContractVersion.query.count(),
        ContractTransaction.query.count(),
        len(driver.sent),
        [(c.id, c.status, c.implementation_of) for c in ContractVersion.query.order_by(ContractVersion.id)],
    )


def test_create_upgradeable_links_pair(upgradeable_token, driver):
    proxy, impl = upgradeable_token
    assert proxy.name == "Token_Proxy"
    assert proxy.abi == PROXY_ABI
    assert proxy.implementation_of == impl.id
    assert impl.proxy_contract_id == proxy.id
    assert impl.is_upgradeable
    assert proxy.is_proxy and not impl.is_proxy
    assert driver.implementation_of(proxy.address) == impl.address


def test_upgrade_then_rollback_scenario(lifecycle, upgradeable_token, driver):
    proxy, v100 = upgradeable_token

    result = lifecycle.upgrade(v100, "1.0.1", {"artifact": TOKEN_ARTIFACT})
    v101 = result["new_contract"]
    assert v101.version == "1.0.1"
    assert v101.proxy_contract_id == proxy.id
    assert v101.is_upgradeable
    assert proxy.implementation_of == v101.id
    assert v100.status == "upgraded"
    assert driver.implementation_of(proxy.address) == v101.address
    upgrade_tx = result["transaction"].transaction
    assert upgrade_tx.method_name == "upgradeTo"
    assert upgrade_tx.status == "success"
    assert upgrade_tx.rollback_id is None

    rolled = lifecycle.rollback(v101)
    assert rolled["restored_contract"].id == v100.id
    assert rolled["rolled_back_to"] == "1.0.0"
    assert proxy.implementation_of == v100.id
    assert driver.implementation_of(proxy.address) == v100.address
    assert v100.status == "deployed"
    assert v101.status == "deprecated"

    rollback_tx = rolled["transaction"].transaction
    assert rollback_tx.rollback_id == upgrade_tx.id
    assert rollback_tx.contract_id == proxy.id
    assert registry.find_inconsistent_proxies() == []


def test_rollback_picks_immediately_previous(lifecycle, upgradeable_token):
    _, t1 = upgradeable_token
    t2 = lifecycle.upgrade(t1, "1.1.0", {"artifact": TOKEN_ARTIFACT})["new_contract"]
    t3 = lifecycle.upgrade(t2, "1.2.0", {"artifact": TOKEN_ARTIFACT})["new_contract"]

    rolled = lifecycle.rollback(t3)
    assert rolled["restored_contract"].id == t2.id


def test_rollback_to_named_version(lifecycle, upgradeable_token):
    proxy, t1 = upgradeable_token
    t2 = lifecycle.upgrade(t1, "1.1.0", {"artifact": TOKEN_ARTIFACT})["new_contract"]
    t3 = lifecycle.upgrade(t2, "1.2.0", {"artifact": TOKEN_ARTIFACT})["new_contract"]

    rolled = lifecycle.rollback(t3, "1.0.0")
    assert rolled["restored_contract"].id == t1.id
    assert proxy.implementation_of == t1.id


def test_rollback_unknown_target_changes_nothing(lifecycle, upgradeable_token, driver):
    _, impl = upgradeable_token
    lifecycle.upgrade(impl, "1.0.1", {"artifact": TOKEN_ARTIFACT})
    current = registry.resolve_contract("Token@1.0.1")
    before = _snapshot(driver)

    with pytest.raises(TargetVersionNotFound):
        lifecycle.rollback(current, "7.7.7")
    assert _snapshot(driver) == before


def test_rollback_without_older_version(lifecycle, upgradeable_token):
    _, impl = upgradeable_token
    with pytest.raises(NoPreviousVersionFound):
        lifecycle.rollback(impl)


def test_upgrade_not_upgradeable_creates_nothing(lifecycle, token, driver):
    before = _snapshot(driver)
    with pytest.raises(NotUpgradeable):
        lifecycle.upgrade(token, "1.0.1", {"artifact": TOKEN_ARTIFACT})
    assert _snapshot(driver) == before

    with pytest.raises(NotUpgradeable):
        lifecycle.rollback(token)


def test_rollback_ignores_plain_deployments_of_the_same_name(lifecycle, driver):
    lifecycle.deploy({"name": "Token", "version": "0.9.0", "artifact": TOKEN_ARTIFACT})
    pair = lifecycle.create_upgradeable_contract({"name": "Token", "version": "1.0.0", "artifact": TOKEN_ARTIFACT})
    proxy, v100 = pair["proxy"], pair["implementation"]

    with pytest.raises(NoPreviousVersionFound):
        lifecycle.rollback(v100)
    with pytest.raises(TargetVersionNotFound):
        lifecycle.rollback(v100, "0.9.0")
    assert driver.implementation_of(proxy.address) == v100.address

    v101 = lifecycle.upgrade(v100, "1.0.1", {"artifact": TOKEN_ARTIFACT})["new_contract"]
    restored = lifecycle.rollback(v101)["restored_contract"]
    assert restored.id == v100.id
    assert restored.is_upgradeable

    # the proxy is still upgradeable after the round trip
    v102 = lifecycle.upgrade(restored, "1.0.2", {"artifact": TOKEN_ARTIFACT})["new_contract"]
    assert proxy.implementation_of == v102.id


def test_upgrade_of_failed_record_touches_nothing(lifecycle, upgradeable_token, driver):
    proxy, impl = upgradeable_token
    driver.fail_on.add("deploy")
    with pytest.raises(DeploymentFailed):
        lifecycle.upgrade(impl, "1.0.1", {"artifact": TOKEN_ARTIFACT})
    driver.fail_on.clear()

    failed = registry.resolve_contract("Token@1.0.1")
    assert failed.status == "failed"
    assert failed.is_upgradeable and failed.proxy_contract_id == proxy.id

    before = _snapshot(driver)
    with pytest.raises(NotUpgradeable, match="status is 'failed'"):
        lifecycle.upgrade(failed, "1.0.2", {"artifact": TOKEN_ARTIFACT})
    assert _snapshot(driver) == before
    assert driver.implementation_of(proxy.address) == impl.address


def test_upgrade_and_rollback_of_superseded_record_are_refused(lifecycle, upgradeable_token, driver):
    proxy, v100 = upgradeable_token
    lifecycle.upgrade(v100, "1.0.1", {"artifact": TOKEN_ARTIFACT})
    before = _snapshot(driver)

    with pytest.raises(NotUpgradeable):
        lifecycle.upgrade(v100, "1.0.2", {"artifact": TOKEN_ARTIFACT})
    with pytest.raises(NotUpgradeable):
        lifecycle.rollback(v100)
    assert _snapshot(driver) == before


def test_upgrade_without_proxy(lifecycle):
    rec = lifecycle.deploy({"name": "Token", "artifact": TOKEN_ARTIFACT, "is_upgradeable": True}).contract
    with pytest.raises(NoProxyFound) as err:
        lifecycle.upgrade(rec, "1.0.1", {"artifact": TOKEN_ARTIFACT})
    assert not isinstance(err.value, ProxyNotFound)
    assert ContractVersion.query.count() == 1


def test_upgrade_with_dangling_proxy_reference(lifecycle, upgradeable_token):
    _, impl = upgradeable_token
    registry.update_contract(impl, proxy_contract_id=999999)

    with pytest.raises(ProxyNotFound):
        lifecycle.upgrade(impl, "1.0.1", {"artifact": TOKEN_ARTIFACT})


def test_migration_runs_after_repoint(lifecycle, upgradeable_token):
    MIGRATED.clear()
    _, impl = upgradeable_token
    lifecycle.upgrade(impl, "1.0.1", {"artifact": TOKEN_ARTIFACT, "migration": "test_upgrader:record_migration"})
    assert MIGRATED == [("1.0.0", "1.0.1")]


def test_migration_failure_is_partial(lifecycle, upgradeable_token, driver):
    proxy, impl = upgradeable_token

    def broken(old, new):
        raise RuntimeError("storage layout mismatch")

    with pytest.raises(PartialUpgradeError) as err:
        lifecycle.upgrade(impl, "1.0.1", {"artifact": TOKEN_ARTIFACT, "migration": broken})

    e = err.value
    assert e.step == "migration"
    assert e.new_contract.version == "1.0.1"
    assert e.transaction_hash
    # the repoint is not undone
    assert proxy.implementation_of == e.new_contract.id
    assert driver.implementation_of(proxy.address) == e.new_contract.address
    assert impl.status == "upgraded"


def test_reverted_repoint_is_partial(lifecycle, upgradeable_token, driver):
    proxy, impl = upgradeable_token
    driver.revert_methods.add("upgradeTo")

    with pytest.raises(PartialUpgradeError) as err:
        lifecycle.upgrade(impl, "1.0.1", {"artifact": TOKEN_ARTIFACT})
    assert err.value.step == "repoint"
    assert proxy.implementation_of == impl.id
    assert impl.status == "deployed"


def test_unconfirmed_repoint_is_partial(lifecycle, upgradeable_token, driver):
    _, impl = upgradeable_token
    driver.withhold_receipts = True
    with pytest.raises(PartialUpgradeError) as err:
        lifecycle.upgrade(impl, "1.0.1", {"artifact": TOKEN_ARTIFACT, "timeout": 0.1})
    assert err.value.step == "confirmation"


def test_load_migration_rejects_bad_reference():
    with pytest.raises(ValueError):
        load_migration("no_colon_here")
    assert load_migration(record_migration) is record_migration

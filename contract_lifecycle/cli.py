# contract_lifecycle/cli.py
"""``flask contracts ...`` commands."""
import json
import threading
from pathlib import Path

import click
from flask.cli import AppGroup

from contract_lifecycle.exceptions import ContractLifecycleError, PartialUpgradeError
from contract_lifecycle.services import abi as abi_helpers
from contract_lifecycle.services import registry
from contract_lifecycle.services.lifecycle import get_lifecycle
from contract_lifecycle.services.watcher import ContractWatcher

contracts_cli = AppGroup("contracts", help="Compile, deploy, call, upgrade and roll back contracts.")


def _echo_json(data) -> None:
    click.echo(json.dumps(abi_helpers.to_jsonable(data), indent=2, default=str))


def _fail(e: ContractLifecycleError) -> None:
    message = f"{type(e).__name__}: {e}"
    if isinstance(e, PartialUpgradeError):
        message += f" (failed step: {e.step}; reconcile with `flask contracts reconcile`)"
    raise click.ClickException(message)


@contracts_cli.command("compile")
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
@click.option("--name", help="Contract name (defaults to the file stem).")
@click.option("--version", "version", help="Store the artifact under this version.")
def compile_cmd(source, name, version):
    """Compile SOURCE with solc and optionally store the artifact."""
    name = name or Path(source).stem
    try:
        result = get_lifecycle().compiler.compile_file(source, name, version)
    except ContractLifecycleError as e:
        _fail(e)
    click.echo(f"Compiled {name}: {len(result['abi'])} ABI entries, "
               f"{len(result['bytecode']) // 2 - 1} bytes")
    if version:
        click.echo(f"Artifact stored as {name}@{version}")


@contracts_cli.command("deploy")
@click.argument("name")
@click.option("--version", "version", default="1.0.0", show_default=True)
@click.option("--network")
@click.option("--params", help="Constructor params: JSON array or comma separated.")
@click.option("--from", "sender", help="Deployer address.")
@click.option("--gas-limit", type=int)
@click.option("--source", type=click.Path(exists=True, dir_okay=False), help="Compile this file instead of a stored artifact.")
@click.option("--upgradeable", is_flag=True, help="Deploy behind a proxy.")
@click.option("--preview", is_flag=True, help="Dry run: estimate cost, submit nothing.")
@click.option("--json", "as_json", is_flag=True)
def deploy_cmd(name, version, network, params, sender, gas_limit, source, upgradeable, preview, as_json):
    """Deploy NAME@VERSION."""
    lifecycle = get_lifecycle()
    payload = {
        "name": name,
        "version": version,
        "network": network,
        "constructor_params": abi_helpers.parse_parameters(params),
        "from": sender,
        "gas_limit": gas_limit,
        "source_file": source,
    }
    try:
        if preview:
            result = lifecycle.preview_deployment(name, payload, network)
            if as_json:
                return _echo_json(result)
            click.echo(f"Preview {name} on {result['network']}")
            click.echo(f"  gas limit:      {result['gas_limit']}")
            click.echo(f"  gas price:      {result['gas_price']}")
            click.echo(f"  estimated cost: {result['estimated_cost_eth']} ETH")
            click.echo(f"  bytecode size:  {result['bytecode_size']} bytes")
            return

        if upgradeable:
            pair = lifecycle.create_upgradeable_contract(payload)
            data = {"proxy": pair["proxy"].to_dict(), "implementation": pair["implementation"].to_dict()}
            if as_json:
                return _echo_json(data)
            click.echo(f"Deployed {pair['implementation'].full_identifier} at {pair['implementation'].address}")
            click.echo(f"Proxy at {pair['proxy'].address}")
            return

        deployment = lifecycle.deploy(payload)
    except ContractLifecycleError as e:
        _fail(e)

    if as_json:
        return _echo_json(deployment.to_dict())
    click.echo(f"Deployed {deployment.contract.full_identifier} at {deployment.contract.address}")
    click.echo(f"  tx: {deployment.transaction_hash}")


@contracts_cli.command("call")
@click.argument("contract")
@click.argument("method")
@click.option("--params", help="JSON array or comma separated.")
@click.option("--network")
@click.option("--from", "sender")
@click.option("--value", type=int, default=0)
@click.option("--gas-limit", type=int)
@click.option("--wait", is_flag=True, help="Wait for the receipt of a write.")
@click.option("--timeout", type=float)
@click.option("--json", "as_json", is_flag=True)
def call_cmd(contract, method, params, network, sender, value, gas_limit, wait, timeout, as_json):
    """Call METHOD on CONTRACT (id, address, Name or Name@version)."""
    options = {"from": sender, "value": value, "gas_limit": gas_limit, "wait": wait, "timeout": timeout}
    try:
        result = get_lifecycle().call(contract, method, params, options, network)
    except ContractLifecycleError as e:
        _fail(e)

    if not hasattr(result, "outcome"):
        click.echo(abi_helpers.format_return_value(result, as_json))
        return
    if as_json:
        return _echo_json(result.to_dict())
    click.echo(f"{result.outcome}: {result.transaction_hash}")
    if result.confirmed:
        click.echo(f"  block: {result.block_number}")
        if not result.success:
            click.echo(f"  error: {result.error}")
    elif result.timed_out:
        click.echo("  no receipt yet; still pending")


@contracts_cli.command("upgrade")
@click.argument("contract")
@click.argument("new_version")
@click.option("--network")
@click.option("--source", type=click.Path(exists=True, dir_okay=False))
@click.option("--params", help="Constructor params for the new implementation.")
@click.option("--from", "sender")
@click.option("--migration", help="Post-upgrade migration as module:function.")
def upgrade_cmd(contract, new_version, network, source, params, sender, migration):
    """Upgrade CONTRACT to NEW_VERSION through its proxy."""
    options = {
        "source_file": source,
        "constructor_params": abi_helpers.parse_parameters(params) if params else None,
        "from": sender,
        "migration": migration,
    }
    try:
        result = get_lifecycle().upgrade(contract, new_version, options, network)
    except ContractLifecycleError as e:
        _fail(e)
    click.echo(f"Upgraded {result['old_contract'].full_identifier} -> {result['new_contract'].full_identifier}")
    click.echo(f"  proxy {result['proxy'].address} tx {result['transaction'].transaction_hash}")


@contracts_cli.command("rollback")
@click.argument("contract")
@click.option("--to", "target_version", help="Exact version to restore.")
@click.option("--network")
@click.option("--from", "sender")
def rollback_cmd(contract, target_version, network, sender):
    """Point CONTRACT's proxy back at an older implementation."""
    try:
        result = get_lifecycle().rollback(contract, target_version, {"from": sender}, network)
    except ContractLifecycleError as e:
        _fail(e)
    click.echo(f"Rolled back {result['rolled_back_from'].full_identifier} -> {result['restored_contract'].full_identifier}")


@contracts_cli.command("status")
@click.argument("contract")
@click.option("--network")
@click.option("--json", "as_json", is_flag=True)
def status_cmd(contract, network, as_json):
    """Show a contract record and its recent transactions."""
    try:
        info = get_lifecycle().status(contract, network)
    except ContractLifecycleError as e:
        _fail(e)
    if as_json:
        return _echo_json(info)
    c = info["contract"]
    click.echo(f"{c['name']}@{c['version']} [{c['status']}] on {c['network']}")
    click.echo(f"  address: {c['address'] or '-'}")
    if "is_current" in info:
        click.echo(f"  current implementation: {'yes' if info['is_current'] else 'no'}")
    for tx in info["transactions"]:
        click.echo(f"  {tx['created_at']} {tx['method_name']:<16} {tx['status']:<8} {tx['transaction_hash']}")


@contracts_cli.command("verify")
@click.argument("contract")
@click.option("--network")
def verify_cmd(contract, network):
    """Submit source verification to the block explorer."""
    try:
        result = get_lifecycle().verify(contract, network)
    except ContractLifecycleError as e:
        _fail(e)
    click.echo(f"verification {result['status']}: {result.get('guid') or result.get('reason') or result.get('message')}")


@contracts_cli.command("watch")
@click.option("--path", "paths", multiple=True, help="Directory or file to watch (repeatable).")
@click.option("--network")
@click.option("--interval", type=float)
@click.option("--duration", type=float, help="Stop after this many seconds.")
def watch_cmd(paths, network, interval, duration):
    """Redeploy contracts when their source files change."""
    lifecycle = get_lifecycle()
    settings = lifecycle.settings
    watcher = ContractWatcher(
        lifecycle,
        paths or settings.watch_paths or (settings.sources_path,),
        network=network,
        interval=interval or settings.watch_interval,
        cancel_event=threading.Event(),
        deadline=duration,
    )
    click.echo(f"Watching {', '.join(str(p) for p in watcher.paths)} (Ctrl+C to stop)")
    try:
        deployments = watcher.run()
    except KeyboardInterrupt:
        watcher.stop()
        deployments = []
    for d in deployments:
        click.echo(f"Redeployed {d.contract.full_identifier} at {d.contract.address}")


@contracts_cli.command("test")
@click.argument("name")
@click.option("--network", help="Network to test on (defaults to the configured default).")
@click.option("--source", type=click.Path(exists=True, dir_okay=False), help="Compile this file instead of a stored artifact.")
@click.option("--artifact-version", help="Stored artifact to deploy when no --source is given.", default="1.0.0", show_default=True)
@click.option("--params", help="Constructor params: JSON array or comma separated.")
@click.option("--json", "as_json", is_flag=True)
def test_cmd(name, network, source, artifact_version, params, as_json):
    """Deploy NAME to a test network, run its read methods, then deprecate it."""
    if not as_json:
        click.echo(f"Testing {name} on {get_lifecycle().network_name(network)}...")
    try:
        results = get_lifecycle().test_contract(
            name, network,
            source_file=source,
            artifact_version=artifact_version,
            constructor_params=abi_helpers.parse_parameters(params),
        )
    except ContractLifecycleError as e:
        _fail(e)

    if as_json:
        _echo_json(results)
    else:
        for t in results["tests"]:
            mark = "ok  " if t["passed"] else "FAIL"
            detail = f" ({t['error']})" if t.get("error") else ""
            click.echo(f"  {mark} {t['name']}{detail}")
        click.echo(f"Total: {results['total']}  Passed: {results['passed']}  Failed: {results['failed']}")
    if results["failed"]:
        raise click.exceptions.Exit(1)


@contracts_cli.command("reconcile")
@click.option("--network")
def reconcile_cmd(network):
    """List proxies whose current implementation looks inconsistent."""
    issues = registry.find_inconsistent_proxies(network)
    if not issues:
        click.echo("All proxies consistent")
        return
    for issue in issues:
        click.echo(f"{issue['proxy']} -> #{issue['implementation_id']}: {issue['problem']}")
    raise click.exceptions.Exit(1)

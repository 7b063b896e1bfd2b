# contract_lifecycle/services/registry.py
"""
Durable records for contract versions and their transactions.

Every write goes through ``save`` so a row that would break a record
invariant never reaches the database. Multi-step workflows commit one row
at a time; nothing here opens a transaction spanning several rows.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from contract_lifecycle.exceptions import (
    ContractNotFound,
    RegistryInvariantError,
)
from contract_lifecycle.models import db
from contract_lifecycle.models.contract import (
    ADDRESSED_STATUSES,
    STATUS_DEPLOYED,
    STATUS_UPGRADED,
    ContractVersion,
)
from contract_lifecycle.models.transaction import (
    TX_PENDING,
    TX_SUCCESS,
    ContractTransaction,
)


# ---------------------------
# Writes
# ---------------------------

def save(*records):
    """Validate and commit one or more rows; returns the first one."""
    for rec in records:
        problems = rec.invariant_violations()
        if problems:
            db.session.rollback()
            raise RegistryInvariantError(f"{rec!r}: {'; '.join(problems)}")
        db.session.add(rec)
    db.session.commit()
    return records[0] if records else None


def create_contract(**fields) -> ContractVersion:
    rec = ContractVersion(**fields)
    return save(rec)


def update_contract(contract: ContractVersion, **fields) -> ContractVersion:
    for key, value in fields.items():
        setattr(contract, key, value)
    contract.updated_at = datetime.utcnow()
    return save(contract)


def record_transaction(**fields) -> ContractTransaction:
    fields.setdefault("status", TX_PENDING)
    if fields["status"] != TX_PENDING:
        fields.setdefault("confirmed_at", datetime.utcnow())
    rec = ContractTransaction(**fields)
    return save(rec)


def update_transaction(tx: ContractTransaction, **fields) -> ContractTransaction:
    for key, value in fields.items():
        setattr(tx, key, value)
    tx.updated_at = datetime.utcnow()
    return save(tx)


# ---------------------------
# Reads
# ---------------------------

def get_contract(contract_id: int) -> Optional[ContractVersion]:
    return db.session.get(ContractVersion, contract_id)


def list_contracts(
    name: Optional[str] = None,
    network: Optional[str] = None,
    status: Optional[str] = None,
    address: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[ContractVersion]:
    q = ContractVersion.query
    if name:
        q = q.filter(ContractVersion.name == name)
    if network:
        q = q.filter(ContractVersion.network == network)
    if status:
        q = q.filter(ContractVersion.status == status)
    if address:
        q = q.filter(db.func.lower(ContractVersion.address) == address.lower())
    q = q.order_by(ContractVersion.created_at.desc(), ContractVersion.id.desc())
    if limit:
        q = q.limit(limit)
    return q.all()


def find_by_address(address: str, network: Optional[str] = None) -> Optional[ContractVersion]:
    found = list_contracts(address=address, network=network, limit=1)
    return found[0] if found else None


def find_by_name(name: str, network: Optional[str] = None, version: Optional[str] = None) -> Optional[ContractVersion]:
    """Exact version when given, else the latest deployed one."""
    q = ContractVersion.query.filter(ContractVersion.name == name)
    if network:
        q = q.filter(ContractVersion.network == network)
    if version:
        q = q.filter(ContractVersion.version == version)
    else:
        q = q.filter(ContractVersion.status == STATUS_DEPLOYED)
    return q.order_by(ContractVersion.created_at.desc(), ContractVersion.id.desc()).first()


def resolve_contract(identifier, network: Optional[str] = None) -> ContractVersion:
    """
    Resolve ``identifier`` to a registry row. Accepts:

      - an int id (or digit string)
      - a ``0x`` address
      - ``Name@1.2.3``
      - ``Name`` (latest deployed)
    """
    ident = str(identifier).strip()
    rec = None
    if ident.isdigit():
        rec = get_contract(int(ident))
    elif ident.startswith("0x"):
        rec = find_by_address(ident, network)
    elif "@" in ident:
        name, version = ident.split("@", 1)
        rec = find_by_name(name, network, version)
    else:
        rec = find_by_name(ident, network)

    if rec is None:
        where = f" on network '{network}'" if network else ""
        raise ContractNotFound(f"Contract '{ident}' not found{where}")
    return rec


def transactions_for(contract: ContractVersion, limit: int = 10) -> List[ContractTransaction]:
    return (
        ContractTransaction.query
        .filter_by(contract_id=contract.id)
        .order_by(ContractTransaction.created_at.desc(), ContractTransaction.id.desc())
        .limit(limit)
        .all()
    )


def find_transaction(transaction_hash: str) -> Optional[ContractTransaction]:
    return (
        ContractTransaction.query
        .filter(db.func.lower(ContractTransaction.transaction_hash) == transaction_hash.lower())
        .order_by(ContractTransaction.id.desc())
        .first()
    )


def latest_upgrade_transaction(proxy: ContractVersion) -> Optional[ContractTransaction]:
    """The most recent successful repoint of ``proxy`` (upgrade or rollback)."""
    return (
        ContractTransaction.query
        .filter_by(contract_id=proxy.id, method_name="upgradeTo", status=TX_SUCCESS)
        .order_by(ContractTransaction.created_at.desc(), ContractTransaction.id.desc())
        .first()
    )


def find_previous_version(contract: ContractVersion, target_version: Optional[str] = None) -> Optional[ContractVersion]:
    """
    Rollback candidate for ``contract``: an upgradeable implementation with
    the same name and network, fronted by the same proxy, with an address.
    With ``target_version`` the newest row of exactly that version;
    otherwise the newest row created strictly before ``contract`` by
    ``(created_at, id)``.
    """
    q = ContractVersion.query.filter(
        ContractVersion.name == contract.name,
        ContractVersion.network == contract.network,
        ContractVersion.id != contract.id,
        ContractVersion.is_upgradeable.is_(True),
        ContractVersion.proxy_contract_id == contract.proxy_contract_id,
        ContractVersion.status.in_(ADDRESSED_STATUSES),
    )
    if target_version:
        q = q.filter(ContractVersion.version == target_version)
    else:
        q = q.filter(db.or_(
            ContractVersion.created_at < contract.created_at,
            db.and_(ContractVersion.created_at == contract.created_at, ContractVersion.id < contract.id),
        ))
    return q.order_by(ContractVersion.created_at.desc(), ContractVersion.id.desc()).first()


def implementations_of(proxy: ContractVersion) -> List[ContractVersion]:
    return (
        ContractVersion.query
        .filter_by(proxy_contract_id=proxy.id)
        .order_by(ContractVersion.created_at.desc(), ContractVersion.id.desc())
        .all()
    )


# ---------------------------
# Reconciliation
# ---------------------------

def find_inconsistent_proxies(network: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Flag proxies whose current implementation is missing or is in a status
    other than deployed/upgraded, which is what a crash between the on-chain
    repoint and the registry update leaves behind.
    """
    q = ContractVersion.query.filter(ContractVersion.implementation_of.isnot(None))
    if network:
        q = q.filter(ContractVersion.network == network)

    report = []
    for proxy in q.order_by(ContractVersion.id).all():
        impl = get_contract(proxy.implementation_of)
        if impl is None:
            problem = "implementation record missing"
        elif impl.status not in (STATUS_DEPLOYED, STATUS_UPGRADED):
            problem = f"implementation status is '{impl.status}'"
        elif impl.proxy_contract_id != proxy.id:
            problem = "implementation does not reference this proxy"
        else:
            continue
        report.append({
            "proxy_id": proxy.id,
            "proxy": proxy.full_identifier,
            "network": proxy.network,
            "implementation_id": proxy.implementation_of,
            "implementation": impl.full_identifier if impl else None,
            "problem": problem,
        })
    return report

# contract_lifecycle/services/abi.py
"""
ABI helpers shared by the deployer, interactor and compiler: method lookup,
arity checks, read/write classification and parameter parsing.

Full ABI encoding is left to the ledger driver; only the 4-byte selector is
computed here so transactions and records can name the method they target.
"""
import json
from typing import Any, Dict, List, Optional, Sequence

from web3 import Web3

from contract_lifecycle.exceptions import MethodNotFound, ParameterCountMismatch

READ_MUTABILITIES = ("view", "pure")
VALID_ENTRY_TYPES = ("function", "constructor", "event", "fallback", "receive", "error")


def normalize_abi(abi) -> List[Dict[str, Any]]:
    """Accept an ABI as list or JSON string and return the list."""
    if abi is None:
        return []
    if isinstance(abi, (str, bytes)):
        abi = json.loads(abi)
    if isinstance(abi, dict) and "abi" in abi:
        abi = abi["abi"]
    if not isinstance(abi, list):
        raise ValueError("Invalid ABI format: expected a JSON list")
    return abi


def validate_abi(abi) -> bool:
    for item in normalize_abi(abi):
        if not isinstance(item, dict) or item.get("type") not in VALID_ENTRY_TYPES:
            return False
    return True


def find_method(abi, method_name: str) -> Optional[Dict[str, Any]]:
    for item in normalize_abi(abi):
        if isinstance(item, dict) and item.get("type") == "function" and item.get("name") == method_name:
            return item
    return None


def get_method(abi, method_name: str) -> Dict[str, Any]:
    method = find_method(abi, method_name)
    if method is None:
        raise MethodNotFound(f"Method '{method_name}' not found in contract ABI")
    return method


def get_constructor(abi) -> Optional[Dict[str, Any]]:
    for item in normalize_abi(abi):
        if isinstance(item, dict) and item.get("type") == "constructor":
            return item
    return None


def validate_parameters(method: Dict[str, Any], params: Sequence[Any]) -> None:
    expected = len(method.get("inputs") or [])
    actual = len(params)
    if actual != expected:
        raise ParameterCountMismatch(method.get("name", "constructor"), expected, actual)


def is_read_method(method: Dict[str, Any]) -> bool:
    mutability = method.get("stateMutability")
    if mutability is None:
        # pre-0.6 ABIs only carry the "constant" flag
        return bool(method.get("constant", False))
    return mutability in READ_MUTABILITIES


def method_signature(method: Dict[str, Any]) -> str:
    types = ",".join(_canonical_type(i) for i in method.get("inputs") or [])
    return f"{method.get('name', '')}({types})"


def function_selector(method: Dict[str, Any]) -> str:
    digest = Web3.keccak(text=method_signature(method))
    return "0x" + bytes(digest[:4]).hex()


def _canonical_type(param: Dict[str, Any]) -> str:
    t = param.get("type", "unknown")
    if t.startswith("tuple"):
        inner = ",".join(_canonical_type(c) for c in param.get("components") or [])
        return f"({inner}){t[len('tuple'):]}"
    return t


def parse_parameters(params) -> List[Any]:
    """
    Turn CLI/API parameter input into an ordered list.

      - list/tuple      -> list as is
      - JSON array      -> decoded list
      - "a, b, c"       -> ["a", "b", "c"]
      - "" / None       -> []
      - single token    -> [token]
    """
    if params is None:
        return []
    if isinstance(params, (list, tuple)):
        return list(params)
    if not isinstance(params, str):
        return [params]

    text = params.strip()
    if not text:
        return []

    try:
        decoded = json.loads(text)
    except json.JSONDecodeError:
        decoded = None
    if isinstance(decoded, list):
        return decoded

    if "," in text:
        return [p.strip() for p in text.split(",")]

    return [text]


def format_return_value(value: Any, as_json: bool = False) -> str:
    value = to_jsonable(value)
    if as_json:
        return json.dumps(value, indent=2)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, dict)):
        return json.dumps(value, indent=2)
    return str(value)


def to_jsonable(x: Any):
    """Normalize driver output (HexBytes, bytes, tuples) to JSON types."""
    if isinstance(x, (bytes, bytearray)):
        return "0x" + bytes(x).hex()
    if isinstance(x, (list, tuple)):
        return [to_jsonable(i) for i in x]
    if isinstance(x, dict):
        return {k: to_jsonable(v) for k, v in x.items()}
    return x

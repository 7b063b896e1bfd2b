import pytest

from contract_lifecycle.exceptions import MethodNotFound, ParameterCountMismatch
from contract_lifecycle.services import abi as abi_helpers
from helpers import COUNTER_ABI, TOKEN_ABI


@pytest.mark.parametrize("raw,expected", [
    (None, []),
    ("", []),
    ("   ", []),
    ([1, "a"], [1, "a"]),
    (("x", 2), ["x", 2]),
    ('["0xabc", 10, true]', ["0xabc", 10, True]),
    ("0xabc, 10", ["0xabc", "10"]),
    ("0xabc", ["0xabc"]),
    ("42", ["42"]),
    (7, [7]),
])
def test_parse_parameters(raw, expected):
    assert abi_helpers.parse_parameters(raw) == expected


def test_json_object_is_a_single_token():
    assert abi_helpers.parse_parameters('{"a": 1}') == ['{"a": 1}']


def test_get_method_and_constructor():
    assert abi_helpers.get_method(TOKEN_ABI, "transfer")["name"] == "transfer"
    assert abi_helpers.get_constructor(TOKEN_ABI) is None
    assert abi_helpers.get_constructor(COUNTER_ABI)["inputs"][0]["name"] == "start"
    with pytest.raises(MethodNotFound):
        abi_helpers.get_method(TOKEN_ABI, "burn")


def test_abi_accepts_json_string():
    import json
    assert abi_helpers.find_method(json.dumps(TOKEN_ABI), "mint") is not None
    assert abi_helpers.validate_abi(TOKEN_ABI)
    assert not abi_helpers.validate_abi([{"type": "nonsense"}])


@pytest.mark.parametrize("arity", range(0, 5))
@pytest.mark.parametrize("given", range(0, 5))
def test_arity_mismatch_iff_counts_differ(arity, given):
    method = {"type": "function", "name": "m", "inputs": [{"type": "uint256"}] * arity}
    params = list(range(given))
    if arity == given:
        abi_helpers.validate_parameters(method, params)
    else:
        with pytest.raises(ParameterCountMismatch) as err:
            abi_helpers.validate_parameters(method, params)
        assert err.value.expected == arity
        assert err.value.actual == given


def test_read_write_classification():
    assert abi_helpers.is_read_method({"stateMutability": "view"})
    assert abi_helpers.is_read_method({"stateMutability": "pure"})
    assert not abi_helpers.is_read_method({"stateMutability": "nonpayable"})
    assert not abi_helpers.is_read_method({"stateMutability": "payable"})
    # legacy ABIs
    assert abi_helpers.is_read_method({"constant": True})
    assert not abi_helpers.is_read_method({})


def test_function_selector():
    transfer = abi_helpers.get_method(TOKEN_ABI, "transfer")
    assert abi_helpers.method_signature(transfer) == "transfer(address,uint256)"
    assert abi_helpers.function_selector(transfer) == "0xa9059cbb"


def test_format_return_value():
    assert abi_helpers.format_return_value(True) == "true"
    assert abi_helpers.format_return_value(12) == "12"
    assert abi_helpers.format_return_value(b"\x01\x02") == "0x0102"
    assert abi_helpers.format_return_value((1, 2), as_json=True) == "[\n  1,\n  2\n]"

import pytest
from solcx.exceptions import ContractsNotFound, SolcError

from contract_lifecycle.exceptions import CompilationFailed
from contract_lifecycle.services import compiler as compiler_module
from contract_lifecycle.services.compiler import ContractCompiler
from contract_lifecycle.services.settings import LifecycleSettings
from helpers import TOKEN_ABI

SOURCE = "pragma solidity ^0.8.20; contract Token { }"
VERSION_OUTPUT = "solc, the solidity compiler commandline interface\nVersion: 0.8.20+commit.a1b79de6.Linux.g++\n"


def _compiled(name="Token"):
    return {
        "<stdin>:Helper": {"abi": [], "bin": "00", "bin-runtime": "00"},
        f"<stdin>:{name}": {"abi": TOKEN_ABI, "bin": "6080604052", "bin-runtime": "60806040"},
    }


@pytest.fixture()
def compiler(tmp_path):
    return ContractCompiler(LifecycleSettings(artifacts_path=str(tmp_path / "artifacts")))


@pytest.fixture()
def fake_solc(monkeypatch):
    calls = []

    def fake_compile(source, **kwargs):
        calls.append(kwargs)
        return _compiled()

    def fake_wrapper(**kwargs):
        return VERSION_OUTPUT, "", ["solc", "--version"], None

    monkeypatch.setattr(compiler_module, "compile_source", fake_compile)
    monkeypatch.setattr(compiler_module, "solc_wrapper", fake_wrapper)
    return calls


def _solc_error(stderr):
    return SolcError(
        message="An error occurred during execution",
        command=["solc", "--combined-json", "abi,bin,bin-runtime", "-"],
        return_code=1,
        stdin_data=SOURCE,
        stdout_data="",
        stderr_data=stderr,
    )


def test_compile_picks_named_contract(compiler, fake_solc):
    result = compiler.compile(SOURCE, "Token")
    assert result["abi"] == TOKEN_ABI
    assert result["bytecode"] == "0x6080604052"
    assert result["deployed_bytecode"] == "0x60806040"
    assert result["source_hash"].startswith("0x")

    options = fake_solc[0]
    assert options["solc_binary"] == "solc"
    assert options["output_values"] == ["abi", "bin", "bin-runtime"]
    assert options["optimize"] is True and options["optimize_runs"] == 200
    assert options["evm_version"] == "paris"
    # nothing stored without a version
    assert not compiler.storage_path.exists()


def test_optimizer_off_is_not_passed(tmp_path, fake_solc):
    compiler = ContractCompiler(LifecycleSettings(artifacts_path=str(tmp_path), optimize=False, solc_path="/opt/solc"))
    compiler.compile(SOURCE, "Token")
    assert "optimize" not in fake_solc[0]
    assert fake_solc[0]["solc_binary"] == "/opt/solc"


def test_compile_with_version_stores_artifact(compiler, fake_solc):
    compiler.compile(SOURCE, "Token", "1.0.0")
    stored = compiler.load_artifacts("Token", "1.0.0")
    assert stored["bytecode"] == "0x6080604052"
    assert stored["compiler_version"] == "0.8.20+commit.a1b79de6.Linux.g++"
    assert stored["optimization_enabled"] is True
    assert stored["optimization_runs"] == 200
    assert compiler.artifact_path("Token", "1.0.0").name == "artifact.json"


def test_load_missing_artifact_returns_none(compiler):
    assert compiler.load_artifacts("Nope", "0.0.1") is None


def test_compile_error_raises(compiler, monkeypatch):
    def failing(source, **kwargs):
        raise _solc_error("ParserError: Expected ';' but got '}'")

    monkeypatch.setattr(compiler_module, "compile_source", failing)
    with pytest.raises(CompilationFailed, match="ParserError"):
        compiler.compile(SOURCE, "Token")


def test_missing_solc_binary(compiler, monkeypatch):
    def missing(*args, **kwargs):
        raise FileNotFoundError("solc")

    monkeypatch.setattr(compiler_module, "compile_source", missing)
    monkeypatch.setattr(compiler_module, "solc_wrapper", missing)
    with pytest.raises(CompilationFailed, match="Compiler not found"):
        compiler.compile(SOURCE, "Token")
    assert compiler.compiler_version() == "unknown"


def test_empty_output(compiler, monkeypatch):
    def empty(source, **kwargs):
        raise ContractsNotFound(
            command=["solc"], return_code=0, stdin_data=SOURCE, stdout_data="{}", stderr_data="",
        )

    monkeypatch.setattr(compiler_module, "compile_source", empty)
    with pytest.raises(CompilationFailed, match="No contracts"):
        compiler.compile(SOURCE, "Token")


def test_compile_file(compiler, fake_solc, tmp_path):
    src = tmp_path / "Token.sol"
    src.write_text(SOURCE)
    assert compiler.compile_file(str(src))["bytecode"] == "0x6080604052"
    with pytest.raises(CompilationFailed):
        compiler.compile_file(str(tmp_path / "Missing.sol"))

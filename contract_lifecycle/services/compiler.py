# contract_lifecycle/services/compiler.py
import hashlib
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from solcx import compile_source
from solcx.exceptions import ContractsNotFound, SolcError
from solcx.wrapper import solc_wrapper

from contract_lifecycle.exceptions import CompilationFailed
from contract_lifecycle.services import abi as abi_helpers
from contract_lifecycle.services.settings import LifecycleSettings

logger = logging.getLogger(__name__)


class ContractCompiler:
    """Drives the external ``solc`` binary through py-solc-x and keeps the versioned artifact store."""

    def __init__(self, settings: LifecycleSettings):
        self.solc_path = settings.solc_path
        self.optimize = settings.optimize
        self.optimize_runs = settings.optimize_runs
        self.evm_version = settings.evm_version
        self.storage_path = Path(settings.artifacts_path)
        self._compiler_version: Optional[str] = None

    # ---------------------------
    # Compilation
    # ---------------------------

    def compile(self, source_code: str, contract_name: str, version: Optional[str] = None) -> Dict[str, Any]:
        """
        Compile Solidity source and return ``{abi, bytecode, deployed_bytecode, source_hash}``.

        When ``version`` is given the artifact is also stored under
        ``<artifacts>/<name>/<version>/artifact.json``.
        """
        try:
            compiled = compile_source(
                source_code,
                output_values=["abi", "bin", "bin-runtime"],
                solc_binary=self.solc_path,
                **self._compile_options(),
            )
        except ContractsNotFound as e:
            raise CompilationFailed("No contracts found in compilation output") from e
        except SolcError as e:
            raise CompilationFailed(f"Compilation failed: {(e.stderr_data or e.message or '').strip()}") from e
        except FileNotFoundError as e:
            raise CompilationFailed(f"Compiler not found at '{self.solc_path}'") from e

        result = self._pick_contract(compiled, contract_name)
        result["source_hash"] = "0x" + hashlib.sha256(source_code.encode("utf-8")).hexdigest()
        logger.info("Compiled %s (%d bytes of bytecode)", contract_name, len(result["bytecode"]) // 2)

        if version:
            self.store_artifacts(contract_name, version, result)
        return result

    def compile_file(self, file_path: str, contract_name: Optional[str] = None, version: Optional[str] = None) -> Dict[str, Any]:
        p = Path(file_path)
        if not p.exists():
            raise CompilationFailed(f"Contract file not found: {file_path}")
        return self.compile(p.read_text(encoding="utf-8"), contract_name or p.stem, version)

    def _compile_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {}
        if self.optimize:
            options.update(optimize=True, optimize_runs=self.optimize_runs)
        if self.evm_version:
            options["evm_version"] = self.evm_version
        return options

    def _pick_contract(self, compiled: Dict[str, Any], contract_name: str) -> Dict[str, Any]:
        if not compiled:
            raise CompilationFailed("No contracts found in compilation output")

        # keys look like "<stdin>:<ContractName>"; prefer the requested one
        key = next((k for k in compiled if k.split(":")[-1] == contract_name), None)
        entry = compiled[key] if key else next(iter(compiled.values()))

        abi = entry.get("abi", [])
        if isinstance(abi, str):
            abi = json.loads(abi or "[]")
        return {
            "abi": abi,
            "bytecode": "0x" + (entry.get("bin") or ""),
            "deployed_bytecode": "0x" + (entry.get("bin-runtime") or ""),
        }

    # ---------------------------
    # Artifact store
    # ---------------------------

    def artifact_path(self, contract_name: str, version: str) -> Path:
        return self.storage_path / contract_name / version / "artifact.json"

    def load_artifacts(self, contract_name: str, version: str) -> Optional[Dict[str, Any]]:
        path = self.artifact_path(contract_name, version)
        if not path.exists():
            return None
        data = json.loads(path.read_text(encoding="utf-8"))
        return data if isinstance(data, dict) else None

    def store_artifacts(self, contract_name: str, version: str, artifacts: Dict[str, Any]) -> Path:
        path = self.artifact_path(contract_name, version)
        path.parent.mkdir(parents=True, exist_ok=True)

        document = {
            "name": contract_name,
            "version": version,
            "compiled_at": datetime.now(timezone.utc).isoformat(),
            "compiler_version": self.compiler_version(),
            "optimization_enabled": self.optimize,
            "optimization_runs": self.optimize_runs,
            "evm_version": self.evm_version,
            "abi": artifacts.get("abi") or [],
            "bytecode": artifacts.get("bytecode") or "",
            "deployed_bytecode": artifacts.get("deployed_bytecode") or "",
            "source_hash": artifacts.get("source_hash"),
        }
        path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        logger.info("Stored artifact %s@%s at %s", contract_name, version, path)
        return path

    def compiler_version(self) -> str:
        if self._compiler_version is None:
            self._compiler_version = "unknown"
            try:
                stdout, _, _, _ = solc_wrapper(solc_binary=self.solc_path, version=True)
            except (OSError, SolcError) as e:
                logger.warning("Could not read solc version: %s", e)
                return self._compiler_version
            for line in stdout.splitlines():
                if "Version:" in line:
                    self._compiler_version = line.split("Version:", 1)[1].strip()
                    break
        return self._compiler_version

    # ---------------------------
    # ABI helpers
    # ---------------------------

    validate_abi = staticmethod(abi_helpers.validate_abi)
    get_constructor = staticmethod(abi_helpers.get_constructor)
    get_method = staticmethod(abi_helpers.find_method)

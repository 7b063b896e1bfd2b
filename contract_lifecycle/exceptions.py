"""Exception classes for the contract lifecycle service."""

from typing import Optional


class ContractLifecycleError(Exception):
    """Base exception for contract lifecycle errors."""

    status_code = 400


class ConfigurationError(ContractLifecycleError, ValueError):
    """Raised when a network or driver is not configured correctly."""

    status_code = 500


class ArtifactNotFound(ContractLifecycleError, LookupError):
    """Raised when neither a stored artifact nor source resolves to bytecode."""

    status_code = 404


class CompilationFailed(ContractLifecycleError, RuntimeError):
    """Raised when the compiler rejects the source or produces no contract."""

    pass


class ContractNotFound(ContractLifecycleError, LookupError):
    """Raised when a contract identifier does not resolve to a registry row."""

    status_code = 404


class MethodNotFound(ContractLifecycleError, LookupError):
    """Raised when a method name is not a function in the contract ABI."""

    pass


class ParameterCountMismatch(ContractLifecycleError, ValueError):
    """Raised when the number of parameters differs from the method inputs."""

    def __init__(self, method: str, expected: int, actual: int):
        self.method = method
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Method '{method}' expects {expected} parameters, but {actual} provided"
        )


class DriverUnavailable(ContractLifecycleError, RuntimeError):
    """Raised when the ledger driver cannot reach its backend."""

    status_code = 503


class GasEstimationFailed(ContractLifecycleError, RuntimeError):
    """Raised by drivers when the backend cannot estimate gas.

    The core always recovers from it with the configured default limit.
    """

    pass


class SubmissionFailed(ContractLifecycleError, RuntimeError):
    """Raised when the driver fails to submit a transaction."""

    status_code = 502

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        super().__init__(f"{operation} failed: {cause}")


class DeploymentFailed(ContractLifecycleError, RuntimeError):
    """Raised when a deployment is rejected by the driver or never lands."""

    status_code = 502

    def __init__(self, message: str, contract=None):
        self.contract = contract
        super().__init__(message)


class NotUpgradeable(ContractLifecycleError, ValueError):
    """Raised when upgrade or rollback targets a non-upgradeable contract."""

    status_code = 409


class NoProxyFound(ContractLifecycleError, LookupError):
    """Raised when an implementation has no proxy reference."""

    status_code = 409


class ProxyNotFound(NoProxyFound):
    """Raised when the referenced proxy row does not exist."""

    status_code = 404


class NoPreviousVersionFound(ContractLifecycleError, LookupError):
    """Raised when rollback has no older version to restore."""

    status_code = 404


class TargetVersionNotFound(NoPreviousVersionFound):
    """Raised when the requested rollback version does not exist."""

    pass


class RegistryInvariantError(ContractLifecycleError, ValueError):
    """Raised when a registry write would break a record invariant."""

    status_code = 500


class PartialUpgradeError(ContractLifecycleError, RuntimeError):
    """Raised when a multi-step upgrade or rollback stops after advancing.

    ``step`` names the step that failed so an operator can reconcile the
    registry with the chain by hand.
    """

    status_code = 500

    def __init__(
        self,
        step: str,
        message: str,
        old_contract=None,
        new_contract=None,
        transaction_hash: Optional[str] = None,
    ):
        self.step = step
        self.old_contract = old_contract
        self.new_contract = new_contract
        self.transaction_hash = transaction_hash
        super().__init__(f"[{step}] {message}")

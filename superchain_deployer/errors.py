"""
Error taxonomy for deployment runs

Fatal conditions are raised as DeploymentError subclasses and end the run.
Recoverable conditions (gas estimation failure, address mismatch) are plain
values that get logged and recorded on the result instead of raised.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """Every failure a deployment run can report"""
    CONFIG_VALIDATION = "config_validation"
    MISSING_PRIVATE_KEY = "missing_private_key"
    COMPILATION = "compilation"
    ARTIFACT_NOT_FOUND = "artifact_not_found"
    CONSTRUCTOR_ARGS = "constructor_args"
    RPC_CONNECTION = "rpc_connection"
    GAS_ESTIMATION = "gas_estimation"
    TRANSACTION_FAILED = "transaction_failed"
    EVENT_NOT_FOUND = "event_not_found"
    ADDRESS_MISMATCH = "address_mismatch"


class DeploymentError(Exception):
    """Base class for fatal deployment errors"""
    kind: ErrorKind
    fatal = True

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context
        # Filled in by the deployer with the last stage reached
        self.stage = None


class ConfigValidationError(DeploymentError):
    kind = ErrorKind.CONFIG_VALIDATION

    def __init__(self, message: str, field: Optional[str] = None, **context: Any):
        super().__init__(message, field=field, **context)
        self.field = field


class MissingPrivateKeyError(DeploymentError):
    kind = ErrorKind.MISSING_PRIVATE_KEY


class CompilationError(DeploymentError):
    kind = ErrorKind.COMPILATION


class ArtifactNotFoundError(DeploymentError):
    kind = ErrorKind.ARTIFACT_NOT_FOUND


class ConstructorArgsError(DeploymentError):
    kind = ErrorKind.CONSTRUCTOR_ARGS


class RpcConnectionError(DeploymentError):
    kind = ErrorKind.RPC_CONNECTION


class TransactionFailedError(DeploymentError):
    kind = ErrorKind.TRANSACTION_FAILED


class EventNotFoundError(DeploymentError):
    kind = ErrorKind.EVENT_NOT_FOUND


@dataclass(frozen=True)
class GasEstimationFailure:
    """Gas estimate was rejected; the fallback limit was used instead"""
    reason: str
    fallback_gas_limit: int
    kind: ErrorKind = field(default=ErrorKind.GAS_ESTIMATION, init=False)
    fatal: bool = field(default=False, init=False)


@dataclass(frozen=True)
class AddressMismatchWarning:
    """Observed deployment address differs from the precomputed one"""
    observed_address: str
    computed_address: str
    scheme: str
    kind: ErrorKind = field(default=ErrorKind.ADDRESS_MISMATCH, init=False)
    fatal: bool = field(default=False, init=False)

    def __str__(self) -> str:
        return (f"Warning: Local deployed address does not match computed "
                f"{self.scheme} address")

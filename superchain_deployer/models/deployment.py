"""
Deployment request and result models for cross-chain deployments
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Tuple

from ..errors import AddressMismatchWarning, GasEstimationFailure


class DeploymentStage(Enum):
    """Linear progress of a single deployment run"""
    IDLE = "idle"
    ARTIFACTS_READY = "artifacts_ready"
    ARGS_ENCODED = "args_encoded"
    SALT_FORMATTED = "salt_formatted"
    GAS_ESTIMATED = "gas_estimated"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    VERIFIED = "verified"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class DeploymentRequest:
    """Single-bytecode deployment through the factory's deployContract"""
    chains: Tuple[int, ...]
    contract_name: str
    salt: str
    rpc_url: str
    factory_contract: str  # checksummed
    constructor_args: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class HubSpokeDeploymentRequest:
    """Hub on the local chain, spokes relayed to spoke_chains, one shared address"""
    spoke_chains: Tuple[int, ...]
    hub_contract: str
    spoke_contract: str
    salt: str
    rpc_url: str
    factory_contract: str  # checksummed
    hub_constructor_args: Tuple[Any, ...] = ()
    spoke_constructor_args: Tuple[Any, ...] = ()
    proxy_init_code_hash: Optional[bytes] = None  # None -> Solady proxy hash


@dataclass
class GasEstimate:
    gas_limit: int
    estimated: bool
    failure: Optional[GasEstimationFailure] = None


@dataclass
class DeploymentResult:
    """Outcome of a confirmed and verified deployment transaction"""
    tx_hash: str
    gas_used: int
    gas_limit: int
    gas_estimated: bool
    deployed_address: str
    computed_address: str
    matched: bool
    local_chain_id: Optional[int]
    target_chains: Tuple[int, ...]
    relayed_chains: Tuple[int, ...] = ()
    mismatch: Optional[AddressMismatchWarning] = None
    gas_failure: Optional[GasEstimationFailure] = None
    warnings: list = field(default_factory=list)

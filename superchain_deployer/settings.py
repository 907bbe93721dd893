"""
Environment configuration for the deployer
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv
from eth_utils import to_bytes

from .errors import ConfigValidationError, MissingPrivateKeyError

DEFAULT_FALLBACK_GAS_LIMIT = 5_000_000
DEFAULT_HUB_SPOKE_FALLBACK_GAS_LIMIT = 8_000_000

PRIVATE_KEY_HINT = (
    "PRIVATE_KEY environment variable is not set. "
    "Set it with: export PRIVATE_KEY=0xYourPrivateKey"
)


@dataclass
class Settings:
    """Runtime settings read from the environment (and .env)"""
    private_key: Optional[str]
    fallback_gas_limit: int = DEFAULT_FALLBACK_GAS_LIMIT
    hub_spoke_fallback_gas_limit: int = DEFAULT_HUB_SPOKE_FALLBACK_GAS_LIMIT
    max_priority_fee_gwei: float = 1.0
    # None waits for the receipt forever
    receipt_timeout: Optional[float] = None
    artifacts_dir: str = "out"
    compile_command: str = "forge build"
    proxy_init_code_hash: Optional[bytes] = None
    log_file: Optional[str] = "logs/deployer.log"

    @classmethod
    def from_env(cls, require_private_key: bool = True) -> "Settings":
        """Load settings, failing fast when PRIVATE_KEY is required and absent"""
        load_dotenv()

        private_key = os.getenv('PRIVATE_KEY')
        if require_private_key and not private_key:
            raise MissingPrivateKeyError(PRIVATE_KEY_HINT, variable='PRIVATE_KEY')

        log_file = os.getenv('LOG_FILE', 'logs/deployer.log')

        return cls(
            private_key=private_key,
            fallback_gas_limit=_int_env('FALLBACK_GAS_LIMIT', DEFAULT_FALLBACK_GAS_LIMIT),
            hub_spoke_fallback_gas_limit=_int_env(
                'HUB_SPOKE_FALLBACK_GAS_LIMIT', DEFAULT_HUB_SPOKE_FALLBACK_GAS_LIMIT
            ),
            max_priority_fee_gwei=_float_env('MAX_PRIORITY_FEE_GWEI', 1.0),
            receipt_timeout=_float_env('RECEIPT_TIMEOUT', None),
            artifacts_dir=os.getenv('ARTIFACTS_DIR', 'out'),
            compile_command=os.getenv('COMPILE_COMMAND', 'forge build'),
            proxy_init_code_hash=_hash_env('CREATE3_PROXY_INITCODE_HASH'),
            log_file=log_file or None,
        )


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw.replace('_', '').replace(',', ''))
    except ValueError:
        raise ConfigValidationError(f"{name} must be an integer, got {raw!r}", field=name)
    if value <= 0:
        raise ConfigValidationError(f"{name} must be positive, got {value}", field=name)
    return value


def _float_env(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigValidationError(f"{name} must be a number, got {raw!r}", field=name)


def _hash_env(name: str) -> Optional[bytes]:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        value = to_bytes(hexstr=raw)
    except ValueError:
        value = b''
    if len(value) != 32:
        raise ConfigValidationError(f"{name} must be a 0x-prefixed 32-byte hex string", field=name)
    return value

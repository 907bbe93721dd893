"""
Services for address computation, artifacts, configuration and verification
"""

from .addresses import (
    SOLADY_CREATE3_PROXY_INITCODE_HASH,
    compute_create2_address,
    compute_create3_address,
    compute_create_address,
)
from .compiler import ArtifactLoader, ForgeCompiler
from .config_source import ConfigSource, FileConfigSource, InteractiveConfigSource
from .init_code import build_init_code, encode_constructor_args
from .receipt_verifier import ReceiptVerifier, VerificationResult
from .salt import format_salt, salt_to_hex

__all__ = [
    'SOLADY_CREATE3_PROXY_INITCODE_HASH',
    'compute_create2_address',
    'compute_create3_address',
    'compute_create_address',
    'ArtifactLoader',
    'ForgeCompiler',
    'ConfigSource',
    'FileConfigSource',
    'InteractiveConfigSource',
    'build_init_code',
    'encode_constructor_args',
    'ReceiptVerifier',
    'VerificationResult',
    'format_salt',
    'salt_to_hex',
]

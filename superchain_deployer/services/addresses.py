"""
Deterministic deployment address computation

CREATE2 (single factory):
    address = keccak256(0xff ++ factory ++ salt ++ keccak256(init_code))[12:]

CREATE3 (proxy indirection, Solady layout):
    proxy   = CREATE2(factory, salt, PROXY_INITCODE_HASH)
    address = keccak256(rlp([proxy, 1]))[12:]

The CREATE3 address depends only on factory and salt, which is what lets a
hub and its spokes share one address while running different bytecode.
"""

from typing import Union

import rlp
from eth_hash.auto import keccak
from eth_utils import to_bytes, to_checksum_address

# keccak256 of the Solady CREATE3 proxy init code. Must match the proxy
# baked into the targeted factory build.
SOLADY_CREATE3_PROXY_INITCODE_HASH = bytes.fromhex(
    '21c35dbe1b344a2488cf3321d6ce542f8e9f305544ff09e4993a62319a497c1f'
)

AddressLike = Union[str, bytes]


def address_to_bytes(address: AddressLike) -> bytes:
    """Convert a 0x hex address (any case) or raw bytes to 20 bytes"""
    raw = address if isinstance(address, bytes) else to_bytes(hexstr=address)
    if len(raw) != 20:
        raise ValueError(f"Address must be 20 bytes, got {len(raw)}")
    return raw


def compute_create2_address_from_hash(factory_address: AddressLike, formatted_salt: bytes,
                                      code_hash: bytes) -> str:
    """CREATE2 address from a precomputed init code hash"""
    if len(formatted_salt) != 32:
        raise ValueError(f"Salt must be 32 bytes, got {len(formatted_salt)}")
    if len(code_hash) != 32:
        raise ValueError(f"Init code hash must be 32 bytes, got {len(code_hash)}")

    factory = address_to_bytes(factory_address)
    digest = keccak(b'\xff' + factory + formatted_salt + code_hash)
    return to_checksum_address(digest[12:])


def compute_create2_address(factory_address: AddressLike, formatted_salt: bytes,
                            init_code: bytes) -> str:
    """CREATE2 address for init code (bytecode with encoded constructor args)"""
    return compute_create2_address_from_hash(factory_address, formatted_salt, keccak(init_code))


def compute_create_address(deployer: AddressLike, nonce: int) -> str:
    """CREATE address of the contract a deployer creates at the given nonce"""
    encoded = rlp.encode([address_to_bytes(deployer), nonce])
    return to_checksum_address(keccak(encoded)[12:])


def compute_create3_address(factory_address: AddressLike, formatted_salt: bytes,
                            proxy_init_code_hash: bytes = SOLADY_CREATE3_PROXY_INITCODE_HASH) -> str:
    """CREATE3 address: the first contract deployed by the salt's CREATE2 proxy"""
    proxy = compute_create2_address_from_hash(factory_address, formatted_salt, proxy_init_code_hash)
    # rlp([proxy, 1]) == 0xd6 0x94 ++ proxy ++ 0x01
    return compute_create_address(proxy, 1)


def addresses_match(left: str, right: str) -> bool:
    return left.lower() == right.lower()

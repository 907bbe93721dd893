"""
Constructor argument encoding and init code assembly
"""

import re
from typing import Any, Dict, List, Sequence

from eth_abi import encode as abi_encode
from eth_utils import to_bytes
from eth_utils.abi import collapse_if_tuple

from ..errors import ConstructorArgsError
from ..models import CompiledArtifact

_ARRAY_SUFFIX = re.compile(r'^(.*)\[(\d*)\]$')


def constructor_types(abi: List[Dict]) -> List[str]:
    for entry in abi:
        if entry.get('type') == 'constructor':
            return [collapse_if_tuple(arg) for arg in entry.get('inputs', [])]
    return []


def normalize_arg(abi_type: str, value: Any) -> Any:
    """Coerce JSON / prompt values into what eth_abi expects for abi_type"""
    array = _ARRAY_SUFFIX.match(abi_type)
    if array:
        if not isinstance(value, (list, tuple)):
            raise ConstructorArgsError(f"Expected a list for {abi_type}, got {value!r}")
        return [normalize_arg(array.group(1), item) for item in value]

    if abi_type.startswith(('uint', 'int')):
        if isinstance(value, bool):
            raise ConstructorArgsError(f"Expected an integer for {abi_type}, got {value!r}")
        if isinstance(value, str):
            try:
                return int(value, 0)
            except ValueError:
                raise ConstructorArgsError(f"Expected an integer for {abi_type}, got {value!r}")
        return value

    if abi_type == 'bool' and isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ('true', '1', 'yes'):
            return True
        if lowered in ('false', '0', 'no'):
            return False
        raise ConstructorArgsError(f"Expected a boolean for bool, got {value!r}")

    if abi_type.startswith('bytes') and isinstance(value, str):
        try:
            return to_bytes(hexstr=value)
        except ValueError:
            raise ConstructorArgsError(f"Expected hex data for {abi_type}, got {value!r}")

    return value


def encode_constructor_args(abi: List[Dict], args: Sequence[Any]) -> bytes:
    """ABI-encode constructor arguments; no arguments encode to b''"""
    if not args:
        return b''

    types = constructor_types(abi)
    if not types:
        raise ConstructorArgsError(
            f"Got {len(args)} constructor argument(s) but the contract has no constructor inputs"
        )
    if len(types) != len(args):
        raise ConstructorArgsError(
            f"Constructor expects {len(types)} argument(s) ({', '.join(types)}), got {len(args)}",
            expected=types,
        )

    values = [normalize_arg(abi_type, value) for abi_type, value in zip(types, args)]
    try:
        return abi_encode(types, values)
    except Exception as e:
        raise ConstructorArgsError(f"Failed to encode constructor arguments: {e}", expected=types)


def build_init_code(artifact: CompiledArtifact, args: Sequence[Any]) -> bytes:
    """Creation bytecode followed by the encoded constructor arguments"""
    return artifact.bytecode + encode_constructor_args(artifact.abi, args)

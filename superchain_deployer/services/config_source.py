"""
Deployment configuration sources

A config source yields a fully validated request. FileConfigSource reads a
JSON file; InteractiveConfigSource prompts for whatever is missing. The
deployer only ever sees the finished request.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import click
from eth_utils import is_address, to_bytes, to_checksum_address

from ..errors import ConfigValidationError
from ..models import DeploymentRequest, HubSpokeDeploymentRequest
from .salt import format_salt


def _require_string(data: Dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigValidationError(f'Missing "{key}"', field=key)
    return value.strip()


def _validate_chains(data: Dict, key: str) -> Tuple[int, ...]:
    chains = data.get(key)
    if not isinstance(chains, list) or not chains:
        raise ConfigValidationError(f'Invalid or missing "{key}"', field=key)

    seen = []
    for chain_id in chains:
        if isinstance(chain_id, bool) or not isinstance(chain_id, int) or chain_id <= 0:
            raise ConfigValidationError(
                f'Invalid chain ID in "{key}": {chain_id!r} (must be a positive integer)', field=key
            )
        if chain_id not in seen:
            seen.append(chain_id)
    return tuple(seen)


def _validate_factory(data: Dict) -> str:
    factory = data.get('factoryContract')
    if not isinstance(factory, str) or not is_address(factory):
        raise ConfigValidationError(
            f'Invalid or missing "factoryContract": {factory!r} (expected a 0x-prefixed 20-byte address)',
            field='factoryContract',
        )
    return to_checksum_address(factory)


def _validate_salt(data: Dict) -> str:
    salt = data.get('salt')
    if not isinstance(salt, str) or not salt:
        raise ConfigValidationError('Missing "salt"', field='salt')
    format_salt(salt)
    return salt


def _validate_args(data: Dict, key: str) -> Tuple[Any, ...]:
    args = data.get(key)
    if args is None:
        return ()
    if not isinstance(args, list):
        raise ConfigValidationError(f'"{key}" must be an array', field=key)
    return tuple(args)


def _validate_proxy_hash(data: Dict) -> Optional[bytes]:
    value = data.get('proxyInitCodeHash')
    if value is None:
        return None
    try:
        raw = to_bytes(hexstr=value) if isinstance(value, str) else None
    except ValueError:
        raw = None
    if raw is None or len(raw) != 32:
        raise ConfigValidationError(
            '"proxyInitCodeHash" must be a 0x-prefixed 32-byte hex string', field='proxyInitCodeHash'
        )
    return raw


def parse_deploy_config(data: Dict) -> DeploymentRequest:
    """Validate a `deploy` config object"""
    if not isinstance(data, dict):
        raise ConfigValidationError("Config must be a JSON object")
    return DeploymentRequest(
        chains=_validate_chains(data, 'chains'),
        contract_name=_require_string(data, 'contractName'),
        salt=_validate_salt(data),
        rpc_url=_require_string(data, 'rpcUrl'),
        factory_contract=_validate_factory(data),
        constructor_args=_validate_args(data, 'constructorArgs'),
    )


def parse_hub_spoke_config(data: Dict) -> HubSpokeDeploymentRequest:
    """Validate a `deploy-hs` config object; spoke chains may be given as chains"""
    if not isinstance(data, dict):
        raise ConfigValidationError("Config must be a JSON object")
    chains_key = 'spokeChains' if 'spokeChains' in data else 'chains'
    return HubSpokeDeploymentRequest(
        spoke_chains=_validate_chains(data, chains_key),
        hub_contract=_require_string(data, 'hubContract'),
        spoke_contract=_require_string(data, 'spokeContract'),
        salt=_validate_salt(data),
        rpc_url=_require_string(data, 'rpcUrl'),
        factory_contract=_validate_factory(data),
        hub_constructor_args=_validate_args(data, 'hubConstructorArgs'),
        spoke_constructor_args=_validate_args(data, 'spokeConstructorArgs'),
        proxy_init_code_hash=_validate_proxy_hash(data),
    )


class ConfigSource:
    """Produces validated deployment requests"""

    def raw_deploy_config(self) -> Dict:
        raise NotImplementedError

    def raw_hub_spoke_config(self) -> Dict:
        raise NotImplementedError

    def load_deploy_request(self) -> DeploymentRequest:
        return parse_deploy_config(self.raw_deploy_config())

    def load_hub_spoke_request(self) -> HubSpokeDeploymentRequest:
        return parse_hub_spoke_config(self.raw_hub_spoke_config())


class FileConfigSource(ConfigSource):
    """JSON config file on disk"""

    def __init__(self, path: str):
        self.path = path
        self.logger = logging.getLogger('superchain_deployer')

    def read(self) -> Dict:
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigValidationError(f"Failed to read or parse config file at {self.path}: {e}")
        self.logger.debug(f"Loaded config from {self.path}")
        return data

    def raw_deploy_config(self) -> Dict:
        return self.read()

    def raw_hub_spoke_config(self) -> Dict:
        return self.read()


# Prompt parsers raise click.BadParameter so click.prompt asks again

def parse_chain_ids(text: str) -> List[int]:
    try:
        chains = [int(part.strip(), 10) for part in text.split(',') if part.strip()]
    except ValueError:
        raise click.BadParameter("Chain IDs must be comma-separated integers, e.g. 10,8453")
    if not chains:
        raise click.BadParameter("At least one chain ID is required.")
    return chains


def parse_constructor_args(text: str) -> List[Any]:
    """JSON array, or comma-separated list of strings; empty means no args"""
    text = str(text or '').strip()
    if not text:
        return []
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return [item.strip() for item in text.split(',')]
    if isinstance(parsed, list):
        return parsed
    return [item.strip() for item in text.split(',')]


def parse_address(text: str) -> str:
    if not is_address(text.strip()):
        raise click.BadParameter("Expected a 0x-prefixed 20-byte address.")
    return to_checksum_address(text.strip())


def parse_salt(text: str) -> str:
    if len(text.encode('utf-8')) > 32:
        raise click.BadParameter("Salt must be at most 32 bytes when UTF-8 encoded.")
    return text


ARGS_HINT = 'as a JSON array or comma-separated list (e.g., ["arg1", 42] or arg1, 42, or press Enter for none)'

DEPLOY_PROMPTS = [
    ('chains', 'Enter chain IDs (comma-separated, e.g., 10,8453)', parse_chain_ids, None),
    ('factoryContract', 'Enter factory contract address', parse_address, None),
    ('contractName', 'Enter contract name (e.g., MyContract)', None, None),
    ('constructorArgs', f'Enter constructor arguments {ARGS_HINT}', parse_constructor_args, ''),
    ('salt', 'Enter salt (e.g., mysalt)', parse_salt, None),
    ('rpcUrl', 'Enter RPC URL (e.g., https://rpc.example.com)', None, None),
]

HUB_SPOKE_PROMPTS = [
    ('spokeChains', 'Enter spoke chain IDs (comma-separated, e.g., 10,8453)', parse_chain_ids, None),
    ('factoryContract', 'Enter factory contract address', parse_address, None),
    ('hubContract', 'Enter hub contract name', None, None),
    ('spokeContract', 'Enter spoke contract name', None, None),
    ('hubConstructorArgs', f'Enter hub constructor arguments {ARGS_HINT}', parse_constructor_args, ''),
    ('spokeConstructorArgs', f'Enter spoke constructor arguments {ARGS_HINT}', parse_constructor_args, ''),
    ('salt', 'Enter salt (e.g., mysalt)', parse_salt, None),
    ('rpcUrl', 'Enter RPC URL (e.g., https://rpc.example.com)', None, None),
]


class InteractiveConfigSource(ConfigSource):
    """Prompts on the terminal for every field not already in `initial`"""

    def __init__(self, initial: Optional[Dict] = None):
        if initial is not None and not isinstance(initial, dict):
            raise ConfigValidationError("Config must be a JSON object")
        self.initial = dict(initial or {})

    def _is_missing(self, data: Dict, key: str) -> bool:
        value = data.get(key)
        if key.endswith('Chains') or key == 'chains':
            return not isinstance(value, list) or not value
        if key.endswith('Args'):
            return not isinstance(value, list)
        return not value

    def _prompt(self, prompts) -> Dict:
        data = dict(self.initial)
        for key, message, value_proc, default in prompts:
            if key == 'spokeChains' and not self._is_missing(data, 'chains'):
                continue
            if not self._is_missing(data, key):
                continue
            data[key] = click.prompt(message, default=default, show_default=False,
                                     value_proc=value_proc)
        return data

    def raw_deploy_config(self) -> Dict:
        return self._prompt(DEPLOY_PROMPTS)

    def raw_hub_spoke_config(self) -> Dict:
        return self._prompt(HUB_SPOKE_PROMPTS)

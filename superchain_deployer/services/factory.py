"""
Deployment factory contract interface

Calldata is encoded offline with eth_abi so the transaction can be built,
estimated and signed without binding a web3 Contract object.
"""

from typing import Sequence

from eth_abi import encode as abi_encode
from eth_hash.auto import keccak
from eth_utils import function_signature_to_4byte_selector
from eth_utils.abi import collapse_if_tuple

FACTORY_ABI = [
    {
        "inputs": [
            {"name": "chainIds", "type": "uint256[]"},
            {"name": "bytecode", "type": "bytes"},
            {"name": "salt", "type": "bytes32"}
        ],
        "name": "deployContract",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [
            {"name": "hubBytecode", "type": "bytes"},
            {"name": "spokeBytecode", "type": "bytes"},
            {"name": "salt", "type": "bytes32"},
            {"name": "spokeChainIds", "type": "uint256[]"}
        ],
        "name": "deployHubAndSpokes",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "contractAddress", "type": "address"},
            {"indexed": True, "name": "chainId", "type": "uint256"}
        ],
        "name": "ContractDeployed",
        "type": "event"
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "chainId", "type": "uint256"},
            {"indexed": True, "name": "targetFactory", "type": "address"}
        ],
        "name": "CrossChainMessageSent",
        "type": "event"
    },
]


def abi_signature(name: str) -> str:
    """Canonical signature of a FACTORY_ABI entry, e.g. deployContract(uint256[],bytes,bytes32)"""
    for entry in FACTORY_ABI:
        if entry['name'] == name:
            types = ','.join(collapse_if_tuple(arg) for arg in entry['inputs'])
            return f"{name}({types})"
    raise KeyError(name)


DEPLOY_CONTRACT_SIGNATURE = abi_signature('deployContract')
DEPLOY_HUB_AND_SPOKES_SIGNATURE = abi_signature('deployHubAndSpokes')

CONTRACT_DEPLOYED_TOPIC = keccak(abi_signature('ContractDeployed').encode())
CROSS_CHAIN_MESSAGE_SENT_TOPIC = keccak(abi_signature('CrossChainMessageSent').encode())


def encode_deploy_contract(chain_ids: Sequence[int], init_code: bytes, formatted_salt: bytes) -> bytes:
    selector = function_signature_to_4byte_selector(DEPLOY_CONTRACT_SIGNATURE)
    return selector + abi_encode(
        ['uint256[]', 'bytes', 'bytes32'],
        [list(chain_ids), init_code, formatted_salt],
    )


def encode_deploy_hub_and_spokes(hub_init_code: bytes, spoke_init_code: bytes,
                                 formatted_salt: bytes, spoke_chain_ids: Sequence[int]) -> bytes:
    selector = function_signature_to_4byte_selector(DEPLOY_HUB_AND_SPOKES_SIGNATURE)
    return selector + abi_encode(
        ['bytes', 'bytes', 'bytes32', 'uint256[]'],
        [hub_init_code, spoke_init_code, formatted_salt, list(spoke_chain_ids)],
    )

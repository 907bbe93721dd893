"""
Shared fixtures: a mocked web3 provider, a mocked signer and artifact helpers
"""

import json
import logging
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from hexbytes import HexBytes

from superchain_deployer.services.addresses import address_to_bytes
from superchain_deployer.services.factory import (
    CONTRACT_DEPLOYED_TOPIC,
    CROSS_CHAIN_MESSAGE_SENT_TOPIC,
)
from superchain_deployer.settings import Settings

FACTORY = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
DEPLOYER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
TX_HASH = HexBytes(b'\x11' * 32)

# Returns 42 from its runtime code; never executed in these tests
SIMPLE_BYTECODE = "0x600a600c600039600a6000f3602a60005260206000f3"
SPOKE_BYTECODE = "0x600b600c600039600b6000f3602b60005260206000f300"

CONSTRUCTOR_ABI = [
    {
        "type": "constructor",
        "inputs": [
            {"name": "initialValue", "type": "uint256"},
            {"name": "owner", "type": "address"},
        ],
        "stateMutability": "nonpayable",
    }
]


def write_artifact(root, name, bytecode=SIMPLE_BYTECODE, abi=None, forge_layout=True):
    """Write a forge-style build artifact under root/<name>.sol/<name>.json"""
    directory = root / f"{name}.sol"
    directory.mkdir(parents=True, exist_ok=True)
    payload = {
        "abi": abi or [],
        "bytecode": {"object": bytecode} if forge_layout else bytecode,
    }
    path = directory / f"{name}.json"
    path.write_text(json.dumps(payload))
    return path


def deployed_log(address, chain_id=10, emitter=FACTORY):
    return {
        'address': emitter,
        'topics': [
            HexBytes(CONTRACT_DEPLOYED_TOPIC),
            HexBytes(b'\x00' * 12 + address_to_bytes(address)),
            HexBytes(chain_id.to_bytes(32, 'big')),
        ],
        'data': HexBytes(b''),
    }


def relay_log(chain_id, target_factory=FACTORY, emitter=FACTORY):
    return {
        'address': emitter,
        'topics': [
            HexBytes(CROSS_CHAIN_MESSAGE_SENT_TOPIC),
            HexBytes(chain_id.to_bytes(32, 'big')),
            HexBytes(b'\x00' * 12 + address_to_bytes(target_factory)),
        ],
        'data': HexBytes(b''),
    }


def make_receipt(logs, status=1, gas_used=210_000):
    return {
        'transactionHash': TX_HASH,
        'status': status,
        'gasUsed': gas_used,
        'logs': logs,
    }


@pytest.fixture
def settings(tmp_path):
    return Settings(private_key=None, artifacts_dir=str(tmp_path / "out"), log_file=None)


@pytest.fixture
def artifacts_dir(tmp_path):
    out = tmp_path / "out"
    out.mkdir()
    return out


@pytest.fixture
def mock_w3():
    w3 = MagicMock()
    w3.is_connected.return_value = True
    w3.eth.chain_id = 10
    w3.eth.estimate_gas.return_value = 1_234_567
    w3.eth.get_block.return_value = {'baseFeePerGas': 1_000_000_000}
    w3.eth.get_transaction_count.return_value = 7
    w3.eth.gas_price = 2_000_000_000
    w3.eth.send_raw_transaction.return_value = TX_HASH
    return w3


@pytest.fixture
def mock_account():
    account = MagicMock()
    account.address = DEPLOYER
    account.sign_transaction.return_value = SimpleNamespace(raw_transaction=b'\xaa' * 8)
    return account


@pytest.fixture(autouse=True)
def reset_deployer_logger():
    yield
    logger = logging.getLogger('superchain_deployer')
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

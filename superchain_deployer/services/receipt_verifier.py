"""
Receipt verification for factory deployments

Pulls the deployed address out of the factory's ContractDeployed event and
checks it against the precomputed deterministic address.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from eth_utils import to_checksum_address, to_hex
from hexbytes import HexBytes

from ..errors import AddressMismatchWarning, EventNotFoundError
from .addresses import (
    SOLADY_CREATE3_PROXY_INITCODE_HASH,
    addresses_match,
    compute_create2_address,
    compute_create3_address,
)
from .factory import CONTRACT_DEPLOYED_TOPIC, CROSS_CHAIN_MESSAGE_SENT_TOPIC

CREATE2 = 'CREATE2'
CREATE3 = 'CREATE3'


@dataclass(frozen=True)
class VerificationResult:
    observed_address: str
    computed_address: str
    matched: bool
    scheme: str
    event_chain_id: Optional[int] = None
    mismatch: Optional[AddressMismatchWarning] = None


def _topic_address(topic) -> str:
    return to_checksum_address(HexBytes(topic)[-20:])


def _topic_int(topic) -> int:
    return int.from_bytes(HexBytes(topic), 'big')


class ReceiptVerifier:
    """Reads factory events from a receipt and cross-checks the address"""

    def __init__(self, factory_address: str):
        self.factory_address = factory_address
        self.logger = logging.getLogger('superchain_deployer')

    def _factory_logs(self, receipt, topic: bytes):
        for log in receipt['logs']:
            topics = log.get('topics') or []
            if not topics or HexBytes(topics[0]) != topic:
                continue
            emitter = log.get('address')
            if emitter and not addresses_match(emitter, self.factory_address):
                self.logger.debug(f"Ignoring event from {emitter}, not the factory")
                continue
            yield topics

    def find_deployed_address(self, receipt) -> Tuple[str, Optional[int]]:
        """Address (and chain id) from the first ContractDeployed log"""
        for topics in self._factory_logs(receipt, CONTRACT_DEPLOYED_TOPIC):
            if len(topics) < 2:
                continue
            chain_id = _topic_int(topics[2]) if len(topics) > 2 else None
            return _topic_address(topics[1]), chain_id
        raise EventNotFoundError(
            'ContractDeployed event not found in receipt',
            tx_hash=to_hex(receipt['transactionHash']) if receipt.get('transactionHash') else None,
        )

    def relayed_messages(self, receipt) -> List[Tuple[int, str]]:
        """(chain id, target factory) for each CrossChainMessageSent log"""
        messages = []
        for topics in self._factory_logs(receipt, CROSS_CHAIN_MESSAGE_SENT_TOPIC):
            if len(topics) < 3:
                continue
            messages.append((_topic_int(topics[1]), _topic_address(topics[2])))
        return messages

    def verify(self, receipt, formatted_salt: bytes, init_code: Optional[bytes] = None,
               proxy_init_code_hash: Optional[bytes] = None) -> VerificationResult:
        """Compare the observed address with CREATE2 (init_code given) or CREATE3"""
        observed, event_chain_id = self.find_deployed_address(receipt)

        if init_code is not None:
            scheme = CREATE2
            computed = compute_create2_address(self.factory_address, formatted_salt, init_code)
        else:
            scheme = CREATE3
            computed = compute_create3_address(
                self.factory_address, formatted_salt,
                proxy_init_code_hash or SOLADY_CREATE3_PROXY_INITCODE_HASH,
            )

        matched = addresses_match(observed, computed)
        mismatch = None
        if not matched:
            mismatch = AddressMismatchWarning(observed, computed, scheme)
            self.logger.info(f"{scheme} address mismatch: observed {observed}, computed {computed}")
        else:
            self.logger.debug(f"{scheme} address verified: {observed}")

        return VerificationResult(
            observed_address=observed,
            computed_address=computed,
            matched=matched,
            scheme=scheme,
            event_chain_id=event_chain_id,
            mismatch=mismatch,
        )

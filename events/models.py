"""Input model for raw marketplace logs."""
from typing import Any, Dict, List

from pydantic import BaseModel, field_validator

class RawLog(BaseModel):
    """One log entry as delivered by the chain, before decoding."""
    network_id: int
    contract_version: str
    address: str
    data: str
    topics: List[str]
    transaction_hash: str
    block_number: int
    block_hash: str
    log_index: int

    @field_validator('transaction_hash', 'block_hash', 'address')
    @classmethod
    def lowercase_hex(cls, value: str) -> str:
        if not value.startswith('0x'):
            raise ValueError(f"expected 0x-prefixed hex, got {value!r}")
        return value.lower()

    @field_validator('block_number', 'log_index')
    @classmethod
    def non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @classmethod
    def from_rpc_log(cls, network_id: int, contract_version: str, log: Dict[str, Any]) -> 'RawLog':
        """Build from an ``eth_getLogs`` result entry (quantities are hex strings)."""
        return cls(
            network_id=network_id,
            contract_version=contract_version,
            address=log['address'],
            data=log.get('data') or '0x',
            topics=log.get('topics') or [],
            transaction_hash=log['transactionHash'],
            block_number=int(log['blockNumber'], 16),
            block_hash=log['blockHash'],
            log_index=int(log['logIndex'], 16),
        )

"""
Data models for memo transfers and wallet history.

This module defines the raw records mapped from indexer payloads, the
normalized history row used for CSV output, and the locator that joins
them.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional


# Asset identifier used for the chain's native token
NATIVE_ASSET = "NATIVE"

# Transfer direction relative to a queried address
SEND = "Send"
RECEIVE = "Receive"

# Memo states on a history row
MEMO_ABSENT = "absent"  # No remark was co-submitted with the transfer
MEMO_ENCRYPTED = "encrypted"  # Raw envelope, decryption not attempted yet
MEMO_DECRYPTED = "decrypted"
MEMO_UNREADABLE = "unreadable"  # Envelope that did not open for this identity
MEMO_OPAQUE = "opaque"  # Remark that is not a memo envelope

# CSV column order for output
CSV_COLUMNS = [
    "direction",
    "sender",
    "recipient",
    "asset_symbol",
    "amount",
    "fee",
    "memo",
    "memo_state",
    "timestamp",
    "extrinsic_index",
    "tx_hash",
]


@dataclass(frozen=True)
class Locator:
    """
    Position of one extrinsic on chain: (block number, index in block).

    Rendered as "<block>-<index>", the form indexers call extrinsic_index.
    """

    block: int
    index: int

    @classmethod
    def parse(cls, value: str) -> "Locator":
        """
        Parse a "<block>-<index>" string.

        Raises:
            ValueError: If the value is not two non-negative integers
        """
        parts = str(value).split("-")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ValueError(f"Invalid extrinsic locator: {value!r}")
        return cls(block=int(parts[0]), index=int(parts[1]))

    def __str__(self) -> str:
        return f"{self.block}-{self.index}"


@dataclass(frozen=True)
class RawTransferRecord:
    """A transfer as reported by the indexer."""

    locator: Locator
    block_number: int
    timestamp: int
    sender: str
    recipient: str
    asset_id: str  # NATIVE_ASSET for the native token, indexer asset id otherwise
    asset_symbol: str
    amount: str  # Raw integer string in the asset's smallest unit
    fee: str
    success: bool
    tx_hash: str


@dataclass(frozen=True)
class CallParam:
    """One named parameter of a call."""

    name: str
    type_name: str
    value: Any


@dataclass(frozen=True)
class InnerCall:
    """A call nested inside a batch."""

    module: str
    function: str
    params: List[CallParam] = field(default_factory=list)


@dataclass(frozen=True)
class RawExtrinsicParams:
    """The ordered call parameters of one extrinsic."""

    locator: Locator
    params: List[CallParam]

    @property
    def inner_calls(self) -> Optional[List[InnerCall]]:
        """
        Inner calls if this extrinsic is a batch, otherwise None.

        A batch has exactly one parameter, named "calls", holding the
        sequence of inner calls. A list with any item that is not a decoded
        call is not treated as a batch.
        """
        if len(self.params) != 1:
            return None
        param = self.params[0]
        if param.name != "calls" or not isinstance(param.value, list):
            return None
        if not all(isinstance(call, InnerCall) for call in param.value):
            return None
        return param.value


@dataclass(frozen=True)
class HistoryRow:
    """
    Normalized wallet history entry.

    direction is None when the row was reconciled without a queried
    address (point lookups by hash).
    """

    direction: Optional[str]
    sender: str
    recipient: str
    asset_symbol: str
    amount: str
    fee: str
    memo: Optional[str]
    memo_state: str
    timestamp: int
    locator: Locator
    tx_hash: str

    def to_csv_row(self) -> List[str]:
        """Convert row to a CSV row (list of strings)."""
        return [
            self.direction or "",
            self.sender,
            self.recipient,
            self.asset_symbol,
            self.amount,
            self.fee,
            self.memo if self.memo is not None else "",
            self.memo_state,
            str(self.timestamp),
            str(self.locator),
            self.tx_hash,
        ]

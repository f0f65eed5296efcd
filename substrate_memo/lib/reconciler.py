"""
History reconciliation: pairing indexer transfers with their memos.

The memo of a transfer is the payload of the System.remark call that
closes the transfer's batch_all extrinsic. This mirrors how
TransferComposer builds batches ([transfer, remark]) and must stay in
lockstep with it: only the last inner call of a batch is inspected.
"""

import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from .errors import DecryptionFailure, NotFoundError
from .keys import Identity
from .memo_codec import decrypt
from .models import (
    MEMO_ABSENT,
    MEMO_DECRYPTED,
    MEMO_ENCRYPTED,
    MEMO_OPAQUE,
    MEMO_UNREADABLE,
    RECEIVE,
    SEND,
    HistoryRow,
    Locator,
    RawExtrinsicParams,
    RawTransferRecord,
)
from .subscan_client import SubscanClient

REMARK_MODULE = "system"
REMARK_FUNCTIONS = ("remark", "remark_with_event")

DEFAULT_MAX_WORKERS = 8


def extract_memos(records: Iterable[RawExtrinsicParams]) -> Dict[Locator, Optional[str]]:
    """
    Map each extrinsic locator to the raw memo it carries, or None.

    Args:
        records: Extrinsic parameter records from the indexer

    Returns:
        Dict of locator to raw remark payload (None when there is no memo)
    """
    memos: Dict[Locator, Optional[str]] = {}
    for record in records:
        memo: Optional[str] = None
        calls = record.inner_calls
        if calls:
            last_call = calls[-1]
            if (
                last_call.module.lower() == REMARK_MODULE
                and last_call.function in REMARK_FUNCTIONS
                and last_call.params
            ):
                value = last_call.params[0].value
                if value is not None:
                    memo = str(value)
        memos[record.locator] = memo
    return memos


def reconcile(
    transfers: Iterable[RawTransferRecord],
    memos: Dict[Locator, Optional[str]],
    address: Optional[str] = None,
) -> List[HistoryRow]:
    """
    Build history rows from transfers and their memos.

    Memos are attached raw, not decrypted. Direction is only set when an
    address was queried.

    Args:
        transfers: Transfer records from the indexer
        memos: Output of extract_memos
        address: Queried address, or None for lookups by locator/hash

    Returns:
        List of HistoryRow objects in transfer order
    """
    rows: List[HistoryRow] = []
    for transfer in transfers:
        memo = memos.get(transfer.locator)
        direction = None
        if address is not None:
            direction = SEND if transfer.sender == address else RECEIVE

        rows.append(
            HistoryRow(
                direction=direction,
                sender=transfer.sender,
                recipient=transfer.recipient,
                asset_symbol=transfer.asset_symbol,
                amount=transfer.amount,
                fee=transfer.fee,
                memo=memo,
                memo_state=MEMO_ABSENT if memo is None else MEMO_ENCRYPTED,
                timestamp=transfer.timestamp,
                locator=transfer.locator,
                tx_hash=transfer.tx_hash,
            )
        )
    return rows


def decrypt_row(row: HistoryRow, identity: Identity) -> HistoryRow:
    """
    Attempt to decrypt one row's memo.

    A failure never raises: the raw memo is kept and the state records
    whether it was an envelope that did not open or not an envelope at all.
    """
    if row.memo is None or row.memo_state != MEMO_ENCRYPTED:
        return row
    try:
        plaintext = decrypt(row.memo, identity)
    except DecryptionFailure as e:
        state = MEMO_UNREADABLE if e.is_envelope else MEMO_OPAQUE
        return replace(row, memo_state=state)
    return replace(row, memo=plaintext, memo_state=MEMO_DECRYPTED)


def decrypt_all(
    rows: List[HistoryRow],
    identity: Identity,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> List[HistoryRow]:
    """
    Decrypt every row's memo concurrently, preserving input order.

    Rows are independent; a failure on one row leaves the others untouched.

    Args:
        rows: History rows with raw memos
        identity: Local identity used to open envelopes
        max_workers: Upper bound on concurrent decrypt attempts

    Returns:
        New list of rows, same length and order
    """
    if not rows:
        return []

    workers = max(1, min(max_workers, len(rows)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        result = list(executor.map(lambda row: decrypt_row(row, identity), rows))

    unreadable = sum(1 for row in result if row.memo_state == MEMO_UNREADABLE)
    if unreadable > 0:
        print(
            f"[memo] {unreadable} memo(s) could not be decrypted for {identity.address}",
            file=sys.stderr,
        )

    return result


class HistoryReconciler:
    """
    Reads wallet history from the indexer and pairs transfers with memos.

    Stateless apart from the client; every call fetches and reconciles
    its own records.
    """

    def __init__(self, client: SubscanClient):
        """
        Initialize the reconciler.

        Args:
            client: Indexer client used to fetch records
        """
        self.client = client

    def _reconcile_transfers(
        self,
        transfers: List[RawTransferRecord],
        address: Optional[str],
    ) -> List[HistoryRow]:
        # One extrinsic can hold several transfers; fetch its params once
        locators = list(dict.fromkeys(t.locator for t in transfers))
        memos = extract_memos(self.client.fetch_extrinsic_params(locators))
        return reconcile(transfers, memos, address)

    def history(
        self,
        address: str,
        page: int = 0,
        row: int = 20,
        asset_unique_id: Optional[str] = None,
    ) -> List[HistoryRow]:
        """
        Get an address's transfer history with raw memos attached.

        Args:
            address: Account to list
            page: Page number (0-based)
            row: Page size
            asset_unique_id: Restrict to one asset

        Returns:
            List of HistoryRow objects with direction relative to address
        """
        transfers = self.client.fetch_transfers(
            address=address,
            asset_unique_id=asset_unique_id,
            page=page,
            row=row,
        )
        return self._reconcile_transfers(transfers, address)

    def find_by_locator(self, locator: Locator) -> HistoryRow:
        """
        Get the transfer of one extrinsic with its raw memo.

        Raises:
            NotFoundError: If the indexer has no transfer for the locator
        """
        transfers = self.client.fetch_transfers(locator=locator)
        if not transfers:
            raise NotFoundError(f"No transfer found for extrinsic {locator}")
        return self._reconcile_transfers(transfers[:1], None)[0]

    def find_by_hash(self, tx_hash: str) -> HistoryRow:
        """
        Get a transfer by transaction hash with its raw memo.

        Direction is left unset: no address was queried.

        Raises:
            NotFoundError: If the hash or its transfer is unknown
        """
        return self.find_by_locator(self.client.resolve_locator(tx_hash))

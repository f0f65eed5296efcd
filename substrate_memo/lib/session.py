"""
Per-account session bundling identity, indexer client and signer.

A WalletSession is built once per account and passed to whatever needs
to read history or send transfers; there is no process-wide state.
"""

from typing import List, Optional, Union

from .composer import SignedSubmission, Signer, TransferComposer
from .errors import InputError, InvalidSeedError, SubmissionFailure
from .keys import SUPPORTED_SCHEMES, Identity, KeyScheme, derive_identity
from .models import HistoryRow
from .reconciler import DEFAULT_MAX_WORKERS, HistoryReconciler, decrypt_all, decrypt_row
from .subscan_client import DEFAULT_TIMEOUT, SubscanClient


class WalletSession:
    """Memo-aware wallet operations for one account on one network."""

    def __init__(
        self,
        identity: Identity,
        client: SubscanClient,
        signer: Optional[Signer] = None,
        timeout: Optional[float] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        """
        Initialize the session.

        Args:
            identity: Local account identity
            client: Indexer client for the account's network
            signer: Signer/submitter; required only for sending
            timeout: Submission deadline in seconds
            max_workers: Bound on concurrent memo decryption

        Raises:
            InvalidSeedError: If the identity's scheme cannot open memos
            InputError: If the identity's address format is not the network's
        """
        if identity.scheme not in SUPPORTED_SCHEMES:
            raise InvalidSeedError(f"Key scheme not supported for memos: {identity.scheme.value}")
        network_format = client.get_native_token_info()["ss58_format"]
        if identity.ss58_format != network_format:
            raise InputError(
                f"Identity address format {identity.ss58_format} does not match "
                f"{client.network} format {network_format}"
            )

        self.identity = identity
        self.client = client
        self.max_workers = max_workers
        self.reconciler = HistoryReconciler(client)
        self.composer = TransferComposer(signer, identity, timeout) if signer else None

    @classmethod
    def create(
        cls,
        seed: Union[str, bytes],
        network: str,
        api_key: str,
        signer: Optional[Signer] = None,
        scheme: Union[KeyScheme, str] = KeyScheme.ED25519,
        timeout: Optional[float] = None,
        request_timeout: float = DEFAULT_TIMEOUT,
    ) -> "WalletSession":
        """
        Derive the identity for a network and build its session.

        timeout bounds each submission; request_timeout bounds each indexer
        request.
        """
        client = SubscanClient(network, api_key, timeout=request_timeout)
        ss58_format = client.get_native_token_info()["ss58_format"]
        identity = derive_identity(seed, scheme, ss58_format)
        return cls(identity, client, signer=signer, timeout=timeout)

    def my_address(self) -> str:
        return self.identity.address

    def my_public_key(self) -> str:
        """Hex-encoded public key with 0x prefix."""
        return "0x" + self.identity.public_key.hex()

    def history(
        self,
        address: Optional[str] = None,
        page: int = 0,
        row: int = 20,
        asset_unique_id: Optional[str] = None,
    ) -> List[HistoryRow]:
        """
        Get transfer history with memos decrypted where this account can.

        Args:
            address: Account to list (defaults to this session's account)
            page: Page number (0-based)
            row: Page size
            asset_unique_id: Restrict to one asset
        """
        rows = self.reconciler.history(
            address or self.my_address(),
            page=page,
            row=row,
            asset_unique_id=asset_unique_id,
        )
        return decrypt_all(rows, self.identity, max_workers=self.max_workers)

    def transfer_detail(self, tx_hash: str) -> HistoryRow:
        """Look up one transfer by hash and decrypt its memo if possible."""
        return decrypt_row(self.reconciler.find_by_hash(tx_hash), self.identity)

    def _require_composer(self) -> TransferComposer:
        if self.composer is None:
            raise SubmissionFailure("No signer configured for this session")
        return self.composer

    def transfer(
        self,
        to: str,
        amount: int,
        asset_id: Optional[int] = None,
        memo: Optional[str] = None,
    ) -> SignedSubmission:
        """Send a transfer, with an encrypted memo when one is given."""
        return self._require_composer().compose_transfer_with_memo(to, amount, asset_id, memo)

    def send_message(self, to: str, message: str) -> SignedSubmission:
        """Send an encrypted message as a zero-amount transfer."""
        return self._require_composer().send_encrypted_message(to, message)

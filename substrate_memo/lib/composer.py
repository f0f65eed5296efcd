"""
Transfer composition and submission.

A transfer without a memo is a single value-transfer call. A transfer with
a memo is an atomic Utility.batch_all of [transfer, System.remark], where
the remark carries the encrypted envelope. The remark is always the last
call of the batch; the history reconciler reads memos from that position.
"""

import concurrent.futures
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from .errors import (
    EmptyMessageError,
    InputError,
    InvalidAddressError,
    InvalidRecipientError,
    OperationCancelled,
    OperationTimeout,
    SubmissionFailure,
)
from .keys import Identity, resolve_public_key, validate_address
from .memo_codec import Envelope, encrypt


@dataclass(frozen=True)
class Call:
    """A runtime call: pallet, function and named arguments."""

    module: str
    function: str
    params: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_batch(self) -> bool:
        return self.module == "Utility" and self.function == "batch_all"


@dataclass(frozen=True)
class SignedSubmission:
    """Result of signing and submitting a call."""

    tx_hash: str
    call: Call
    envelope: Optional[Envelope] = None


class Signer(ABC):
    """Signs a call with an identity and submits it to the chain."""

    @abstractmethod
    def sign_and_submit(self, call: Call, identity: Identity, timeout: Optional[float] = None) -> str:
        """
        Sign and submit a call.

        Args:
            call: Call or batch to submit
            identity: Signing identity
            timeout: Deadline in seconds for the submission

        Returns:
            Transaction hash
        """
        pass


def transfer_call(to: str, amount: int, asset_id: Optional[int] = None) -> Call:
    """Build a keep-alive value transfer of the native token or an asset."""
    if asset_id is None:
        return Call("Balances", "transfer_keep_alive", {"dest": to, "value": amount})
    return Call("Assets", "transfer_keep_alive", {"id": asset_id, "target": to, "amount": amount})


def remark_call(payload: str) -> Call:
    return Call("System", "remark", {"remark": payload})


def batch_all_call(*calls: Call) -> Call:
    """Atomic batch: either every call applies or none does."""
    return Call("Utility", "batch_all", {"calls": list(calls)})


class TransferComposer:
    """
    Builds transfers (with or without an encrypted memo) for one identity
    and hands them to a Signer.

    Submission errors are wrapped and re-raised with the cause attached;
    nothing is retried here.
    """

    def __init__(self, signer: Signer, identity: Identity, timeout: Optional[float] = None):
        """
        Initialize the composer.

        Args:
            signer: Signer/submitter collaborator
            identity: Local signing identity
            timeout: Deadline in seconds passed to every submission
        """
        self.signer = signer
        self.identity = identity
        self.timeout = timeout

    def _check_recipient(self, to: str) -> None:
        if not validate_address(to, self.identity.ss58_format):
            raise InvalidRecipientError(f"Recipient is not a valid address: {to}")

    def _check_amount(self, amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise InputError(f"Amount must be a non-negative integer, got {amount!r}")

    def _submit(self, call: Call, envelope: Optional[Envelope] = None) -> SignedSubmission:
        try:
            tx_hash = self.signer.sign_and_submit(call, self.identity, timeout=self.timeout)
        except (TimeoutError, concurrent.futures.TimeoutError, requests.Timeout) as e:
            raise OperationTimeout(f"Submission of {call.module}.{call.function} timed out") from e
        except concurrent.futures.CancelledError as e:
            raise OperationCancelled(f"Submission of {call.module}.{call.function} was cancelled") from e
        except Exception as e:
            raise SubmissionFailure(f"Failed to submit {call.module}.{call.function}: {e}") from e
        return SignedSubmission(tx_hash=str(tx_hash), call=call, envelope=envelope)

    def compose_transfer(self, to: str, amount: int, asset_id: Optional[int] = None) -> SignedSubmission:
        """
        Sign and submit a plain transfer.

        Args:
            to: Recipient address
            amount: Amount in raw units
            asset_id: Asset id, or None for the native token

        Raises:
            InvalidRecipientError: If the recipient address is invalid
            SubmissionFailure: If signing or submission fails
        """
        self._check_recipient(to)
        self._check_amount(amount)
        return self._submit(transfer_call(to, amount, asset_id))

    def compose_transfer_with_memo(
        self,
        to: str,
        amount: int,
        asset_id: Optional[int] = None,
        plaintext: Optional[str] = None,
    ) -> SignedSubmission:
        """
        Sign and submit a transfer with an encrypted memo.

        Without a memo this is compose_transfer. With one, the memo is
        encrypted to the recipient's public key (recovered from the address)
        and submitted as batch_all([transfer, remark]).

        Raises:
            InvalidRecipientError: If the recipient address is invalid
            SubmissionFailure: If signing or submission fails
        """
        if plaintext is None:
            return self.compose_transfer(to, amount, asset_id)

        self._check_recipient(to)
        self._check_amount(amount)
        try:
            recipient_key = resolve_public_key(to, self.identity.scheme, self.identity.ss58_format)
        except InvalidAddressError as e:
            raise InvalidRecipientError(str(e)) from e

        envelope = encrypt(plaintext, self.identity, recipient_key, recipient_address=to)
        batch = batch_all_call(
            transfer_call(to, amount, asset_id),
            remark_call(envelope.to_json()),
        )
        return self._submit(batch, envelope)

    def send_encrypted_message(self, to: str, plaintext: Optional[str]) -> SignedSubmission:
        """
        Send a message as a zero-amount native transfer with a memo.

        Raises:
            EmptyMessageError: If the message is None or empty
        """
        if not plaintext:
            raise EmptyMessageError("Message must not be empty")
        return self.compose_transfer_with_memo(to, 0, None, plaintext)

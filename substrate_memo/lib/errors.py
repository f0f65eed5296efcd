"""
Exception hierarchy for memo transfers and history reconciliation.

Errors fall into three families so callers can tell them apart:
caller-input errors (never retried), recoverable per-row decryption
failures, and transport errors that carry the underlying cause.
"""

from typing import Optional


class MemoWalletError(Exception):
    """Base class for all errors raised by this package."""

    pass


class InputError(MemoWalletError):
    """Raised when caller-supplied input is invalid."""

    pass


class InvalidSeedError(InputError):
    """Raised when a seed cannot be parsed as key material for a scheme."""

    pass


class InvalidAddressError(InputError):
    """Raised when an address does not decode under the expected format."""

    pass


class InvalidRecipientError(InvalidAddressError):
    """Raised when a transfer recipient is not a valid address."""

    pass


class EmptyMessageError(InputError):
    """Raised when an encrypted message has no content."""

    pass


class DecryptionFailure(MemoWalletError):
    """
    A memo could not be turned into plaintext.

    Recoverable: one row, one attempt. Batch decryption keeps the raw
    value and moves on.
    """

    MALFORMED = "malformed"
    SCHEME_MISMATCH = "scheme_mismatch"
    CORRUPTED = "corrupted"
    AUTHENTICATION = "authentication"

    def __init__(self, message: str, reason: str, raw: Optional[str] = None):
        super().__init__(message)
        self.reason = reason
        self.raw = raw

    @property
    def is_envelope(self) -> bool:
        """False when the value was never a memo envelope (plain remark)."""
        return self.reason != self.MALFORMED


class NotFoundError(MemoWalletError):
    """Raised when a point lookup yields no transfer."""

    pass


class TransportError(MemoWalletError):
    """Base class for errors originating in a transport collaborator."""

    pass


class SubmissionFailure(TransportError):
    """Raised when signing or submitting a call fails."""

    pass


class IndexerError(TransportError):
    """Exception raised for indexer API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class IndexerRateLimitError(IndexerError):
    """Exception raised when rate limit is exceeded and retries are exhausted."""

    pass


class IndexerResponseError(IndexerError):
    """Raised when an indexer payload does not have the expected shape."""

    pass


class OperationTimeout(TransportError):
    """Raised when a network call exceeds its deadline."""

    pass


class OperationCancelled(TransportError):
    """Raised when a network call is cancelled before completing."""

    pass

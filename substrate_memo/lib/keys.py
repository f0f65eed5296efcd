"""
Account identity derivation and SS58 address handling.

An identity's public key and address are a pure function of
(seed, scheme, address format). Nothing here caches them: the address is
recomputed from the public key whenever it is asked for.
"""

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple, Union

import base58
from nacl.exceptions import CryptoError
from nacl.signing import SigningKey

from .errors import InvalidAddressError, InvalidSeedError

SS58_PREFIX = b"SS58PRE"
SS58_CHECKSUM_LENGTH = 2
PUBLIC_KEY_LENGTH = 32
SEED_LENGTH = 32

# Address formats reserved by the SS58 registry
RESERVED_SS58_FORMATS = (46, 47)
MAX_SS58_FORMAT = 16383


class KeyScheme(str, Enum):
    """Signature schemes a Substrate account can use."""

    ED25519 = "ed25519"
    SR25519 = "sr25519"
    ECDSA = "ecdsa"


# Schemes this package can derive identities and agree keys for
SUPPORTED_SCHEMES = (KeyScheme.ED25519,)


@dataclass(frozen=True)
class Identity:
    """
    A local account: derived public key plus the seed it came from.

    The seed never leaves the process; it is excluded from repr and
    comparisons.
    """

    scheme: KeyScheme
    public_key: bytes
    ss58_format: int
    seed: bytes = field(repr=False, compare=False)

    @property
    def address(self) -> str:
        """SS58 address under the identity's own network format."""
        return ss58_encode(self.public_key, self.ss58_format)

    def address_for(self, ss58_format: int) -> str:
        """SS58 address of the same account under another network format."""
        return ss58_encode(self.public_key, ss58_format)

    def signing_key(self) -> SigningKey:
        """ed25519 signing key for this identity."""
        return SigningKey(self.seed)


def _checksum(payload: bytes) -> bytes:
    return hashlib.blake2b(SS58_PREFIX + payload, digest_size=64).digest()[:SS58_CHECKSUM_LENGTH]


def _encode_format(ss58_format: int) -> bytes:
    if ss58_format < 64:
        return bytes([ss58_format])
    # Two-byte form for formats 64..16383
    first = ((ss58_format & 0b0000_0000_1111_1100) >> 2) | 0b0100_0000
    second = (ss58_format >> 8) | ((ss58_format & 0b0000_0000_0000_0011) << 6)
    return bytes([first, second])


def ss58_encode(public_key: bytes, ss58_format: int) -> str:
    """
    Encode a 32-byte public key as an SS58 address.

    Args:
        public_key: Raw public key bytes
        ss58_format: Network address format (0 Polkadot, 2 Kusama, 42 generic)

    Returns:
        Base58 address string

    Raises:
        InvalidAddressError: If the key length or format is out of range
    """
    if len(public_key) != PUBLIC_KEY_LENGTH:
        raise InvalidAddressError(f"Public key must be {PUBLIC_KEY_LENGTH} bytes")
    if not 0 <= ss58_format <= MAX_SS58_FORMAT or ss58_format in RESERVED_SS58_FORMATS:
        raise InvalidAddressError(f"Unsupported address format: {ss58_format}")

    payload = _encode_format(ss58_format) + public_key
    return base58.b58encode(payload + _checksum(payload)).decode("ascii")


def ss58_decode(address: str) -> Tuple[int, bytes]:
    """
    Decode an SS58 address into (address format, public key).

    Raises:
        InvalidAddressError: If the address is not valid base58, has a bad
            checksum, or does not embed a 32-byte key
    """
    if not isinstance(address, str) or not address:
        raise InvalidAddressError("Address must be a non-empty string")
    try:
        data = base58.b58decode(address)
    except ValueError as e:
        raise InvalidAddressError(f"Address is not valid base58: {address}") from e

    if not data:
        raise InvalidAddressError(f"Address is empty after decoding: {address}")
    if data[0] < 64:
        ss58_format = data[0]
        prefix_length = 1
    elif data[0] < 128 and len(data) > 1:
        lower = ((data[0] << 2) | (data[1] >> 6)) & 0xFF
        upper = data[1] & 0b0011_1111
        ss58_format = lower | (upper << 8)
        prefix_length = 2
    else:
        raise InvalidAddressError(f"Invalid address prefix: {address}")

    if ss58_format in RESERVED_SS58_FORMATS:
        raise InvalidAddressError(f"Reserved address format {ss58_format}: {address}")
    if len(data) != prefix_length + PUBLIC_KEY_LENGTH + SS58_CHECKSUM_LENGTH:
        raise InvalidAddressError(f"Invalid address length: {address}")

    payload = data[:-SS58_CHECKSUM_LENGTH]
    if _checksum(payload) != data[-SS58_CHECKSUM_LENGTH:]:
        raise InvalidAddressError(f"Invalid address checksum: {address}")

    return ss58_format, bytes(payload[prefix_length:])


def parse_seed(seed: Union[str, bytes]) -> bytes:
    """
    Parse seed material: 32 raw bytes or a 64-character hex string
    (with or without a 0x prefix).

    Raises:
        InvalidSeedError: If the value is not 32 bytes of key material
    """
    if isinstance(seed, (bytes, bytearray)):
        raw = bytes(seed)
    elif isinstance(seed, str):
        text = seed.strip()
        if text[:2].lower() == "0x":
            text = text[2:]
        try:
            raw = bytes.fromhex(text)
        except ValueError as e:
            raise InvalidSeedError("Seed is not a hex string") from e
    else:
        raise InvalidSeedError(f"Unsupported seed type: {type(seed).__name__}")

    if len(raw) != SEED_LENGTH:
        raise InvalidSeedError(f"Seed must be {SEED_LENGTH} bytes, got {len(raw)}")
    return raw


def derive_identity(
    seed: Union[str, bytes],
    scheme: Union[KeyScheme, str] = KeyScheme.ED25519,
    ss58_format: int = 42,
) -> Identity:
    """
    Derive an account identity from a seed.

    Args:
        seed: 32-byte seed (raw or hex)
        scheme: Signature scheme of the account
        ss58_format: Network address format for the identity's address

    Returns:
        Identity with its public key

    Raises:
        InvalidSeedError: If the seed is not key material for the scheme
    """
    try:
        scheme = KeyScheme(scheme)
    except ValueError as e:
        raise InvalidSeedError(f"Unknown key scheme: {scheme}") from e
    if scheme not in SUPPORTED_SCHEMES:
        raise InvalidSeedError(f"Key scheme not supported for derivation: {scheme.value}")

    raw = parse_seed(seed)
    try:
        public_key = bytes(SigningKey(raw).verify_key)
    except (CryptoError, ValueError, TypeError) as e:
        raise InvalidSeedError(f"Seed is not valid {scheme.value} key material") from e

    return Identity(scheme=scheme, public_key=public_key, ss58_format=ss58_format, seed=raw)


def resolve_public_key(
    address: str,
    scheme: Union[KeyScheme, str],
    ss58_format: int,
) -> bytes:
    """
    Recover the public key embedded in an address.

    No network round trip: for ed25519 and sr25519 accounts the address is
    the public key plus network prefix and checksum.

    Raises:
        InvalidAddressError: If the address does not decode, belongs to a
            different network format, or hashes its key (ecdsa)
    """
    decoded_format, public_key = ss58_decode(address)
    if decoded_format != ss58_format:
        raise InvalidAddressError(
            f"Address format {decoded_format} does not match network format {ss58_format}"
        )
    if KeyScheme(scheme) == KeyScheme.ECDSA:
        raise InvalidAddressError("ecdsa addresses do not embed a public key")
    return public_key


def validate_address(address: str, ss58_format: int) -> bool:
    """Check address structure, checksum and network format. Never raises."""
    try:
        decoded_format, _ = ss58_decode(address)
    except InvalidAddressError:
        return False
    return decoded_format == ss58_format

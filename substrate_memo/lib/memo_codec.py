"""
Encrypted memo envelopes.

A memo is encrypted to one recipient with X25519 key agreement between the
sender's private scalar and the recipient's public point (both converted
from their ed25519 keys), HKDF-SHA256, and AES-256-GCM.

Wire format, carried as the sole parameter of a System.remark call:

    {"e": <base64 payload>, "t": <scheme tag>, "to": <recipient address>}

Payload layout: version(1) || sender X25519 public key(32) || nonce(12) ||
AES-GCM ciphertext with tag. The recipient address is the AES-GCM
associated data, so an envelope cannot be re-addressed.
"""

import base64
import binascii
import json
import os
from dataclasses import dataclass
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from nacl.bindings import crypto_scalarmult
from nacl.exceptions import CryptoError
from nacl.signing import VerifyKey

from .errors import DecryptionFailure, InputError
from .keys import SUPPORTED_SCHEMES, Identity, ss58_encode

PAYLOAD_VERSION = 1
X25519_KEY_LENGTH = 32
NONCE_LENGTH = 12
TAG_LENGTH = 16
HKDF_INFO = b"substrate-memo/v1/aes-256-gcm"

# Envelope JSON keys
KEY_CIPHERTEXT = "e"
KEY_SCHEME = "t"
KEY_RECIPIENT = "to"
ENVELOPE_KEYS = frozenset((KEY_CIPHERTEXT, KEY_SCHEME, KEY_RECIPIENT))


@dataclass(frozen=True)
class Envelope:
    """An encrypted memo addressed to one recipient."""

    ciphertext: str  # base64
    scheme: str
    recipient: str

    def to_json(self) -> str:
        """Serialize to the remark payload."""
        return json.dumps(
            {
                KEY_CIPHERTEXT: self.ciphertext,
                KEY_SCHEME: self.scheme,
                KEY_RECIPIENT: self.recipient,
            },
            separators=(",", ":"),
        )


def _malformed(message: str, raw: Optional[str]) -> DecryptionFailure:
    return DecryptionFailure(message, DecryptionFailure.MALFORMED, raw)


def _remark_text(raw: str) -> str:
    """Undo the hex encoding indexers apply to remark bytes."""
    text = raw.strip()
    if text[:2].lower() != "0x":
        return text
    try:
        return bytes.fromhex(text[2:]).decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        return text


def parse_envelope(raw: str) -> Envelope:
    """
    Parse a remark payload into an Envelope.

    Accepts the JSON text or its 0x-prefixed hex encoding.

    Raises:
        DecryptionFailure: With reason MALFORMED if the value is not an
            envelope (plain remark text, garbage, wrong keys)
    """
    if not isinstance(raw, str):
        raise _malformed("Memo is not a string", None)

    try:
        data = json.loads(_remark_text(raw))
    except ValueError as e:
        raise _malformed("Memo is not an envelope", raw) from e

    if not isinstance(data, dict) or set(data) != ENVELOPE_KEYS:
        raise _malformed("Memo does not have the envelope fields", raw)
    if not all(isinstance(data[key], str) for key in ENVELOPE_KEYS):
        raise _malformed("Envelope fields must be strings", raw)

    return Envelope(
        ciphertext=data[KEY_CIPHERTEXT],
        scheme=data[KEY_SCHEME],
        recipient=data[KEY_RECIPIENT],
    )


def _x25519_private(identity: Identity) -> bytes:
    return bytes(identity.signing_key().to_curve25519_private_key())


def _x25519_public(ed25519_public_key: bytes) -> bytes:
    return bytes(VerifyKey(ed25519_public_key).to_curve25519_public_key())


def _derive_key(private_key: bytes, public_key: bytes, nonce: bytes) -> bytes:
    shared = crypto_scalarmult(private_key, public_key)
    return HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=nonce,
        info=HKDF_INFO,
    ).derive(shared)


def encrypt(
    plaintext: str,
    sender: Identity,
    recipient_public_key: bytes,
    recipient_address: Optional[str] = None,
) -> Envelope:
    """
    Encrypt a memo so only the holder of recipient_public_key can read it.

    Every call draws a fresh nonce, so two encryptions of the same text
    differ.

    Args:
        plaintext: Memo text
        sender: Local identity whose private scalar is used for key agreement
        recipient_public_key: Recipient's ed25519 public key
        recipient_address: Address written to the envelope; defaults to the
            key's address under the sender's network format

    Returns:
        Envelope ready to be serialized into a remark

    Raises:
        InputError: If the sender scheme is unsupported or the recipient key
            is not a valid point
    """
    if sender.scheme not in SUPPORTED_SCHEMES:
        raise InputError(f"Cannot encrypt memos for scheme {sender.scheme.value}")
    if recipient_address is None:
        recipient_address = ss58_encode(recipient_public_key, sender.ss58_format)

    try:
        recipient_x25519 = _x25519_public(recipient_public_key)
        nonce = os.urandom(NONCE_LENGTH)
        key = _derive_key(_x25519_private(sender), recipient_x25519, nonce)
    except (CryptoError, ValueError, TypeError) as e:
        raise InputError("Recipient public key is not a valid ed25519 key") from e

    sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), recipient_address.encode("utf-8"))
    sender_x25519 = _x25519_public(sender.public_key)
    payload = bytes([PAYLOAD_VERSION]) + sender_x25519 + nonce + sealed

    return Envelope(
        ciphertext=base64.b64encode(payload).decode("ascii"),
        scheme=sender.scheme.value,
        recipient=recipient_address,
    )


def decrypt(envelope: Union[Envelope, str], identity: Identity) -> str:
    """
    Open a memo envelope with the local identity.

    Args:
        envelope: Envelope or raw remark payload
        identity: Local identity (must be the recipient)

    Returns:
        The plaintext memo

    Raises:
        DecryptionFailure: MALFORMED if the value is not an envelope,
            SCHEME_MISMATCH if the scheme tag differs from the identity's
            scheme (checked before any cryptography), CORRUPTED if the
            payload cannot be decoded, AUTHENTICATION if the envelope does
            not open for this identity
    """
    raw = envelope if isinstance(envelope, str) else None
    if raw is not None:
        envelope = parse_envelope(raw)
    else:
        raw = envelope.to_json()

    if envelope.scheme != identity.scheme.value:
        raise DecryptionFailure(
            f"Envelope scheme {envelope.scheme} does not match identity scheme "
            f"{identity.scheme.value}",
            DecryptionFailure.SCHEME_MISMATCH,
            raw,
        )

    try:
        payload = base64.b64decode(envelope.ciphertext, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionFailure(
            "Envelope ciphertext is not base64", DecryptionFailure.CORRUPTED, raw
        ) from e

    header_length = 1 + X25519_KEY_LENGTH + NONCE_LENGTH
    if len(payload) < header_length + TAG_LENGTH or payload[0] != PAYLOAD_VERSION:
        raise DecryptionFailure(
            "Envelope payload has an unknown layout", DecryptionFailure.CORRUPTED, raw
        )

    sender_x25519 = payload[1 : 1 + X25519_KEY_LENGTH]
    nonce = payload[1 + X25519_KEY_LENGTH : header_length]
    sealed = payload[header_length:]

    try:
        key = _derive_key(_x25519_private(identity), sender_x25519, nonce)
        plaintext = AESGCM(key).decrypt(nonce, sealed, envelope.recipient.encode("utf-8"))
        return plaintext.decode("utf-8")
    except (InvalidTag, CryptoError, UnicodeDecodeError) as e:
        raise DecryptionFailure(
            "Envelope did not open for this identity",
            DecryptionFailure.AUTHENTICATION,
            raw,
        ) from e

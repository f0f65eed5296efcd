"""
Unit tests for memo envelope encryption.

Tests follow the Given/When/Then pattern for clarity.
"""

import base64
import json
from dataclasses import replace
from unittest.mock import patch

import pytest

from substrate_memo.lib.errors import DecryptionFailure, InputError
from substrate_memo.lib.keys import Identity, KeyScheme
from substrate_memo.lib.memo_codec import Envelope, decrypt, encrypt, parse_envelope


class TestEncryptDecrypt:
    """Tests for the encrypt/decrypt pair."""

    @pytest.mark.parametrize("plaintext", ["hello bob", "", "多语言 memo ✓", "x" * 2000])
    def test_recipient_recovers_plaintext(self, alice, bob, plaintext):
        """
        Given a memo encrypted by Alice to Bob's public key
        When Bob decrypts it
        Then the original plaintext should be returned
        """
        # Given
        envelope = encrypt(plaintext, alice, bob.public_key)

        # When
        result = decrypt(envelope, bob)

        # Then
        assert result == plaintext

    def test_decrypts_serialized_envelope(self, alice, bob):
        """
        Given an envelope serialized to remark JSON
        When Bob decrypts the raw string
        Then the plaintext should be returned
        """
        # Given
        raw = encrypt("hello bob", alice, bob.public_key).to_json()

        # When / Then
        assert decrypt(raw, bob) == "hello bob"

    def test_envelope_metadata(self, alice, bob):
        """
        Given a memo encrypted to Bob
        When inspecting the envelope
        Then it should name the scheme and Bob's address
        """
        # When
        envelope = encrypt("hi", alice, bob.public_key)

        # Then
        assert envelope.scheme == "ed25519"
        assert envelope.recipient == bob.address

    def test_encryptions_are_not_repeated(self, alice, bob):
        """
        Given the same plaintext and recipient
        When encrypting twice
        Then the ciphertexts should differ
        """
        # When
        first = encrypt("same text", alice, bob.public_key)
        second = encrypt("same text", alice, bob.public_key)

        # Then
        assert first.ciphertext != second.ciphertext

    def test_nonce_comes_from_os_randomness(self, alice, bob):
        """
        Given os.urandom is patched
        When encrypting
        Then the nonce should be drawn from it
        """
        # Given
        with patch("substrate_memo.lib.memo_codec.os.urandom", return_value=b"\x07" * 12) as urandom:
            # When
            envelope = encrypt("hi", alice, bob.public_key)

        # Then
        urandom.assert_called_once_with(12)
        payload = base64.b64decode(envelope.ciphertext)
        assert payload[33:45] == b"\x07" * 12

    def test_third_party_cannot_decrypt(self, alice, bob, eve):
        """
        Given a memo addressed to Bob
        When Eve tries to decrypt it
        Then a DecryptionFailure should be raised, never a plaintext
        """
        # Given
        envelope = encrypt("for bob only", alice, bob.public_key)

        # When / Then
        with pytest.raises(DecryptionFailure) as exc_info:
            decrypt(envelope, eve)

        assert exc_info.value.reason == DecryptionFailure.AUTHENTICATION
        assert exc_info.value.is_envelope is True

    def test_sender_cannot_decrypt(self, alice, bob):
        """
        Given a memo Alice sent to Bob
        When Alice tries to decrypt it
        Then a DecryptionFailure should be raised
        """
        envelope = encrypt("for bob only", alice, bob.public_key)

        with pytest.raises(DecryptionFailure):
            decrypt(envelope, alice)

    def test_readdressed_envelope_fails(self, alice, bob, eve):
        """
        Given an envelope whose recipient field was rewritten
        When Bob decrypts it
        Then authentication should fail
        """
        # Given
        envelope = replace(encrypt("hi", alice, bob.public_key), recipient=eve.address)

        # When / Then
        with pytest.raises(DecryptionFailure) as exc_info:
            decrypt(envelope, bob)
        assert exc_info.value.reason == DecryptionFailure.AUTHENTICATION

    def test_tampered_ciphertext_fails(self, alice, bob):
        """
        Given an envelope with one ciphertext byte flipped
        When Bob decrypts it
        Then authentication should fail
        """
        # Given
        envelope = encrypt("hi", alice, bob.public_key)
        payload = bytearray(base64.b64decode(envelope.ciphertext))
        payload[-1] ^= 0x01
        tampered = replace(envelope, ciphertext=base64.b64encode(bytes(payload)).decode())

        # When / Then
        with pytest.raises(DecryptionFailure) as exc_info:
            decrypt(tampered, bob)
        assert exc_info.value.reason == DecryptionFailure.AUTHENTICATION

    def test_scheme_mismatch_fails_before_cryptography(self, alice, bob):
        """
        Given an identity whose scheme differs from the envelope's tag
        When decrypting
        Then a scheme mismatch should be reported without key agreement
        """
        # Given
        envelope = encrypt("hi", alice, bob.public_key)
        sr_bob = Identity(
            scheme=KeyScheme.SR25519,
            public_key=bob.public_key,
            ss58_format=0,
            seed=bob.seed,
        )

        # When / Then
        with patch("substrate_memo.lib.memo_codec._derive_key") as derive_key:
            with pytest.raises(DecryptionFailure) as exc_info:
                decrypt(envelope, sr_bob)

        assert exc_info.value.reason == DecryptionFailure.SCHEME_MISMATCH
        derive_key.assert_not_called()

    def test_rejects_invalid_recipient_key(self, alice):
        """
        Given a small-order recipient public key
        When encrypting
        Then an InputError should be raised
        """
        with pytest.raises(InputError):
            encrypt("hi", alice, b"\x01" + b"\x00" * 31, recipient_address="anything")


class TestParseEnvelope:
    """Tests for parsing remark payloads into envelopes."""

    def test_wire_format_has_exactly_three_fields(self, alice, bob):
        """
        Given an envelope
        When serializing it
        Then the JSON object should hold exactly e, t and to
        """
        # When
        data = json.loads(encrypt("hi", alice, bob.public_key).to_json())

        # Then
        assert set(data) == {"e", "t", "to"}
        assert data["t"] == "ed25519"
        assert data["to"] == bob.address

    def test_parses_hex_encoded_remark(self):
        """
        Given an envelope hex-encoded the way indexers report remark bytes
        When parsing
        Then the envelope fields should be recovered
        """
        # Given
        text = '{"e":"AAAA","t":"ed25519","to":"addr"}'
        raw = "0x" + text.encode("utf-8").hex()

        # When
        envelope = parse_envelope(raw)

        # Then
        assert envelope == Envelope(ciphertext="AAAA", scheme="ed25519", recipient="addr")

    @pytest.mark.parametrize(
        "raw",
        [
            "thanks for lunch",
            "0xdeadbeef",
            "[1, 2, 3]",
            '{"e": "AAAA", "t": "ed25519"}',
            '{"e": "AAAA", "t": "ed25519", "to": "addr", "extra": 1}',
            '{"e": 1, "t": "ed25519", "to": "addr"}',
        ],
    )
    def test_non_envelopes_are_malformed(self, raw):
        """
        Given remark payloads that are not memo envelopes
        When parsing
        Then a MALFORMED DecryptionFailure should be raised
        """
        with pytest.raises(DecryptionFailure) as exc_info:
            parse_envelope(raw)

        assert exc_info.value.reason == DecryptionFailure.MALFORMED
        assert exc_info.value.is_envelope is False

    def test_plain_remark_never_reaches_cryptography(self, bob):
        """
        Given a plain-text remark
        When decrypting it
        Then no key agreement should be attempted
        """
        with patch("substrate_memo.lib.memo_codec._derive_key") as derive_key:
            with pytest.raises(DecryptionFailure):
                decrypt("gm", bob)

        derive_key.assert_not_called()

    def test_bad_base64_is_corrupted(self, bob):
        envelope = Envelope(ciphertext="***", scheme="ed25519", recipient=bob.address)

        with pytest.raises(DecryptionFailure) as exc_info:
            decrypt(envelope, bob)
        assert exc_info.value.reason == DecryptionFailure.CORRUPTED
        assert exc_info.value.is_envelope is True

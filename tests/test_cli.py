"""
Unit tests for the CLI module.

Tests follow the Given/When/Then pattern for clarity.
"""

import pytest
import responses

from substrate_memo.lib.composer import Signer, TransferComposer
from substrate_memo.show_wallet_history import (
    SEED_ENV_VAR,
    SUPPORTED_NETWORKS,
    main,
    validate_network,
)


@pytest.fixture(autouse=True)
def no_seed_in_environment(monkeypatch):
    monkeypatch.delenv(SEED_ENV_VAR, raising=False)


def transfer_item(sender, recipient, extrinsic_index="9000000-1"):
    return {
        "from": sender,
        "to": recipient,
        "extrinsic_index": extrinsic_index,
        "success": True,
        "hash": "0x" + "ab" * 32,
        "block_num": 9000000,
        "block_timestamp": 1735689600,
        "amount_v2": "120000",
        "fee": "15927000",
        "asset_symbol": "DOT",
        "asset_unique_id": "DOT",
    }


class TestValidateNetwork:
    """Tests for validate_network function."""

    def test_normalizes_network_name_to_lowercase(self):
        """
        Given a network name in mixed case
        When validating it
        Then it should be normalized to lowercase
        """
        assert validate_network("AssetHub-Polkadot") == "assethub-polkadot"

    def test_raises_error_for_unsupported_network(self):
        """
        Given an unsupported network
        When validating it
        Then a ValueError should be raised
        """
        with pytest.raises(ValueError, match="Unsupported network: ethereum"):
            validate_network("ethereum")

    def test_accepts_all_supported_networks(self):
        for network in SUPPORTED_NETWORKS:
            assert validate_network(network) == network


class TestMain:
    """Tests for the main entry point."""

    def test_help_states_supported_key_scheme(self, capsys):
        # When
        with pytest.raises(SystemExit):
            main(["--help"])

        # Then
        out = capsys.readouterr().out
        assert "Only ed25519 accounts can decrypt memos" in out

    def test_returns_error_for_unsupported_network(self, capsys):
        # When
        exit_code = main(["--api-key", "key", "--network", "ethereum"])

        # Then
        assert exit_code == 1
        assert "Unsupported network" in capsys.readouterr().err

    def test_requires_address_without_seed(self, capsys):
        """
        Given neither a seed nor an address
        When running the CLI
        Then it should fail without making requests
        """
        # When
        exit_code = main(["--api-key", "key"])

        # Then
        assert exit_code == 1
        assert "--address is required" in capsys.readouterr().err

    def test_rejects_invalid_seed(self, capsys):
        exit_code = main(["--api-key", "key", "--seed", "0x1234"])

        assert exit_code == 1
        assert "Error:" in capsys.readouterr().err

    @responses.activate
    def test_prints_raw_memos_without_seed(
        self, capsys, alice, bob, subscan_base_url, mock_subscan_api_key
    ):
        """
        Given an address and no seed
        When running the CLI
        Then rows should be printed as CSV with memos left encrypted
        """
        # Given
        responses.add(
            responses.POST,
            f"{subscan_base_url}/api/v2/scan/transfers",
            json={"code": 0, "data": {"count": 1, "transfers": [transfer_item(alice.address, bob.address)]}},
        )
        responses.add(
            responses.POST,
            f"{subscan_base_url}/api/scan/extrinsic/params",
            json={"code": 0, "data": []},
        )

        # When
        exit_code = main(["--api-key", mock_subscan_api_key, "--address", bob.address])

        # Then
        assert exit_code == 0
        captured = capsys.readouterr()
        assert captured.out.startswith("direction,sender,recipient")
        assert "Receive" in captured.out
        assert "9000000-1" in captured.out
        assert "[assethub-polkadot] Found 1 transfer(s), 0 memo(s) decrypted" in captured.err

    @responses.activate
    def test_decrypts_memos_with_seed_from_environment(
        self, capsys, monkeypatch, alice, bob, bob_seed, subscan_base_url, subscan_params
    ):
        """
        Given a memo transfer to Bob and Bob's seed in the environment
        When running the CLI
        Then the memo should be printed decrypted
        """
        # Given

        class StubSigner(Signer):
            def sign_and_submit(self, call, identity, timeout=None):
                return "0x" + "ab" * 32

        submission = TransferComposer(StubSigner(), alice).compose_transfer_with_memo(
            bob.address, 120000, plaintext="hello bob"
        )
        responses.add(
            responses.POST,
            f"{subscan_base_url}/api/v2/scan/transfers",
            json={"code": 0, "data": {"count": 1, "transfers": [transfer_item(alice.address, bob.address)]}},
        )
        responses.add(
            responses.POST,
            f"{subscan_base_url}/api/scan/extrinsic/params",
            json={
                "code": 0,
                "data": [{"extrinsic_index": "9000000-1", "params": subscan_params(submission.call)}],
            },
        )
        monkeypatch.setenv(SEED_ENV_VAR, bob_seed)

        # When
        exit_code = main(["--api-key", "key"])

        # Then
        assert exit_code == 0
        captured = capsys.readouterr()
        assert "hello bob" in captured.out
        assert f"Wallet address: {bob.address}" in captured.err
        assert "1 memo(s) decrypted" in captured.err

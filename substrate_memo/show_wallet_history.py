#!/usr/bin/env python3
"""
Show a wallet's transfer history with decrypted memos.

This script reads an account's transfers from the Subscan indexer, pairs
each transfer with the encrypted memo submitted alongside it, decrypts the
memos addressed to the local account and writes a CSV report.
"""

import argparse
import os
import sys
from typing import List, Optional

from substrate_memo.lib.errors import MemoWalletError
from substrate_memo.lib.formatters import write_csv
from substrate_memo.lib.models import MEMO_DECRYPTED, HistoryRow
from substrate_memo.lib.reconciler import HistoryReconciler
from substrate_memo.lib.session import WalletSession
from substrate_memo.lib.subscan_client import NETWORK_ENDPOINTS, SubscanClient


SUPPORTED_NETWORKS = list(NETWORK_ENDPOINTS)
SEED_ENV_VAR = "SUBSTRATE_MEMO_SEED"


def log(network: str, message: str) -> None:
    """Log a message with network prefix."""
    print(f"[{network}] {message}", file=sys.stderr)


def validate_network(network: str) -> str:
    """
    Validate and normalize a network name.

    Raises:
        ValueError: If the network is not supported
    """
    network_lower = network.lower()
    if network_lower not in SUPPORTED_NETWORKS:
        raise ValueError(
            f"Unsupported network: {network}. " f"Supported: {', '.join(SUPPORTED_NETWORKS)}"
        )
    return network_lower


def fetch_rows(
    network: str,
    api_key: str,
    seed: Optional[str],
    address: Optional[str],
    tx_hash: Optional[str],
    page: int,
    row: int,
    asset: Optional[str],
) -> List[HistoryRow]:
    """
    Fetch history rows, decrypting memos when a seed is available.

    Without a seed the rows keep their raw memos.
    """
    if seed:
        session = WalletSession.create(seed, network, api_key)
        log(network, f"Wallet address: {session.my_address()}")
        if tx_hash:
            return [session.transfer_detail(tx_hash)]
        return session.history(address, page=page, row=row, asset_unique_id=asset)

    reconciler = HistoryReconciler(SubscanClient(network, api_key))
    if tx_hash:
        return [reconciler.find_by_hash(tx_hash)]
    if not address:
        raise ValueError("--address is required when no seed is given")
    return reconciler.history(address, page=page, row=row, asset_unique_id=asset)


def main(args: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        args: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parser = argparse.ArgumentParser(
        description="Show wallet transfer history with decrypted memos as a CSV report.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  # History of the account behind the seed in ${SEED_ENV_VAR}
  %(prog)s --api-key YOUR_KEY --network assethub-polkadot

  # One transfer by hash, saved to file
  %(prog)s --api-key YOUR_KEY --hash 0x... --output transfer.csv

Only ed25519 accounts can decrypt memos. Seeds of sr25519 accounts (the
default in most Polkadot wallets) derive a different key and will not open
memos sent to them.
        """,
    )

    parser.add_argument("--api-key", required=True, help="Subscan API key")
    parser.add_argument(
        "--network",
        default="assethub-polkadot",
        help=f"Network to query. Supported: {', '.join(SUPPORTED_NETWORKS)}",
    )
    parser.add_argument(
        "--seed",
        default=os.environ.get(SEED_ENV_VAR),
        help=(
            f"ed25519 account seed (hex) used to decrypt memos. Defaults to ${SEED_ENV_VAR}. "
            "sr25519 and ecdsa accounts are not supported"
        ),
    )
    parser.add_argument("--address", help="Address to query (defaults to the seed's address)")
    parser.add_argument("--hash", dest="tx_hash", help="Look up a single transfer by hash")
    parser.add_argument("--asset", help="Restrict history to one asset unique id")
    parser.add_argument("--page", type=int, default=0, help="Page number (default: 0)")
    parser.add_argument("--row", type=int, default=20, help="Rows per page (default: 20)")
    parser.add_argument(
        "--output",
        help="Output file path (timestamp auto-appended). If not specified, outputs to stdout.",
    )

    parsed_args = parser.parse_args(args)

    try:
        network = validate_network(parsed_args.network)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    log(network, "Fetching transfer history...")
    try:
        rows = fetch_rows(
            network,
            parsed_args.api_key,
            parsed_args.seed,
            parsed_args.address,
            parsed_args.tx_hash,
            parsed_args.page,
            parsed_args.row,
            parsed_args.asset,
        )
    except (MemoWalletError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    decrypted = sum(1 for r in rows if r.memo_state == MEMO_DECRYPTED)
    log(network, f"Found {len(rows)} transfer(s), {decrypted} memo(s) decrypted")

    output_file = write_csv(rows, parsed_args.output)
    if output_file:
        print(f"\nResults written to: {output_file}", file=sys.stderr)

    return 0


if __name__ == "__main__":
    sys.exit(main())

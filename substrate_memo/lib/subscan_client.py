"""
Subscan indexer client with automatic rate limit handling and retry logic.

This module provides a centralized client for the Subscan endpoints the
history pipeline reads: transfer lists, extrinsic parameters and hash
lookups. Payloads are mapped into typed records here, at the boundary.
"""

import random
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from .errors import (
    IndexerError,
    IndexerRateLimitError,
    IndexerResponseError,
    NotFoundError,
    OperationTimeout,
)
from .models import (
    NATIVE_ASSET,
    CallParam,
    InnerCall,
    Locator,
    RawExtrinsicParams,
    RawTransferRecord,
)


# Network configuration mapping
NETWORK_ENDPOINTS = {
    "assethub-polkadot": "assethub-polkadot.api.subscan.io",
    "polkadot": "polkadot.api.subscan.io",
    "assethub-kusama": "assethub-kusama.api.subscan.io",
    "kusama": "kusama.api.subscan.io",
    "assethub-westend": "assethub-westend.api.subscan.io",
    "westend": "westend.api.subscan.io",
}

# Native token and address format for each network
NATIVE_TOKENS = {
    "assethub-polkadot": {"symbol": "DOT", "decimals": 10, "ss58_format": 0},
    "polkadot": {"symbol": "DOT", "decimals": 10, "ss58_format": 0},
    "assethub-kusama": {"symbol": "KSM", "decimals": 12, "ss58_format": 2},
    "kusama": {"symbol": "KSM", "decimals": 12, "ss58_format": 2},
    "assethub-westend": {"symbol": "WND", "decimals": 12, "ss58_format": 42},
    "westend": {"symbol": "WND", "decimals": 12, "ss58_format": 42},
}

# Retry configuration
DEFAULT_INITIAL_DELAY = 1.0  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_MAX_RETRIES = 5
DEFAULT_MAX_DELAY = 32.0  # seconds
DEFAULT_JITTER = 0.1  # ±10%
DEFAULT_TIMEOUT = 30.0  # seconds per HTTP request


def _require(item: Dict[str, Any], key: str) -> Any:
    if key not in item or item[key] is None:
        raise IndexerResponseError(f"Indexer record is missing '{key}'")
    return item[key]


def _parse_locator(value: Any) -> Locator:
    try:
        return Locator.parse(value)
    except ValueError as e:
        raise IndexerResponseError(str(e)) from e


def _parse_call_param(item: Any) -> CallParam:
    if not isinstance(item, dict):
        raise IndexerResponseError("Call parameter is not an object")
    value = item.get("value")
    if isinstance(value, list) and value and all(
        isinstance(v, dict) and "call_module" in v for v in value
    ):
        value = [_parse_inner_call(v) for v in value]
    return CallParam(
        name=str(item.get("name", "")),
        type_name=str(item.get("type", "")),
        value=value,
    )


def _parse_inner_call(item: Dict[str, Any]) -> InnerCall:
    params = item.get("params") or []
    if not isinstance(params, list):
        raise IndexerResponseError("Inner call parameters are not a list")
    return InnerCall(
        module=str(item.get("call_module", "")),
        function=str(item.get("call_name", "")),
        params=[_parse_call_param(p) for p in params],
    )


class SubscanClient:
    """
    Centralized Subscan API client with automatic 429 retry handling.

    All indexer interactions go through this class, which handles:
    - Network-specific endpoint URLs
    - HTTP 429 rate limit retries with exponential backoff
    - Request timeouts
    - Mapping JSON payloads to typed records
    """

    def __init__(
        self,
        network: str,
        api_key: str,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
        max_retries: int = DEFAULT_MAX_RETRIES,
        max_delay: float = DEFAULT_MAX_DELAY,
        jitter: float = DEFAULT_JITTER,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize the Subscan client.

        Args:
            network: Subscan network name (e.g. assethub-polkadot)
            api_key: Subscan API key
            initial_delay: Initial delay in seconds for retry backoff
            backoff_multiplier: Multiplier for exponential backoff
            max_retries: Maximum number of retry attempts
            max_delay: Maximum delay cap in seconds
            jitter: Jitter factor (±percentage) to randomize delays
            timeout: Per-request timeout in seconds
        """
        if network not in NETWORK_ENDPOINTS:
            raise ValueError(f"Unsupported network: {network}")
        self.network = network
        self.api_key = api_key
        self.initial_delay = initial_delay
        self.backoff_multiplier = backoff_multiplier
        self.max_retries = max_retries
        self.max_delay = max_delay
        self.jitter = jitter
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json", "x-api-key": api_key})

    @property
    def base_url(self) -> str:
        """Base URL of the network's Subscan API."""
        return f"https://{NETWORK_ENDPOINTS[self.network]}"

    @property
    def native_symbol(self) -> str:
        return NATIVE_TOKENS[self.network]["symbol"]

    def _sanitize_error_message(self, message: str) -> str:
        """Remove API key from error messages to prevent credential leakage."""
        if not self.api_key:
            return message
        return message.replace(self.api_key, "[REDACTED]")

    def _apply_jitter(self, delay: float) -> float:
        """Apply random jitter to a delay value."""
        jitter_range = delay * self.jitter
        return delay + random.uniform(-jitter_range, jitter_range)

    def _execute_with_retry(
        self,
        request_func: Callable[[], requests.Response],
    ) -> requests.Response:
        """
        Execute a request function with retry logic for rate limits and server errors.

        Args:
            request_func: A callable that returns a requests.Response

        Returns:
            The successful response

        Raises:
            IndexerError: For API errors after retries exhausted
            IndexerRateLimitError: When rate limit retries are exhausted
            OperationTimeout: When the last attempt timed out
        """
        delay = self.initial_delay

        for attempt in range(self.max_retries + 1):
            try:
                response = request_func()

                if response.status_code == 429:
                    if attempt < self.max_retries:
                        sleep_time = self._apply_jitter(min(delay, self.max_delay))
                        time.sleep(sleep_time)
                        delay *= self.backoff_multiplier
                        continue
                    raise IndexerRateLimitError(
                        "Rate limit exceeded and max retries reached",
                        status_code=429,
                    )

                if response.status_code in (401, 403):
                    raise IndexerError("Invalid API key", status_code=response.status_code)

                if response.status_code >= 500:
                    if attempt < self.max_retries:
                        sleep_time = self._apply_jitter(min(delay, self.max_delay))
                        time.sleep(sleep_time)
                        delay *= self.backoff_multiplier
                        continue
                    raise IndexerError(
                        f"Server error: {response.status_code}",
                        status_code=response.status_code,
                    )

                response.raise_for_status()
                return response

            except requests.RequestException as e:
                if attempt < self.max_retries:
                    sleep_time = self._apply_jitter(min(delay, self.max_delay))
                    time.sleep(sleep_time)
                    delay *= self.backoff_multiplier
                    continue
                sanitized_msg = self._sanitize_error_message(str(e))
                if isinstance(e, requests.Timeout):
                    raise OperationTimeout(f"Request timed out: {sanitized_msg}") from e
                raise IndexerError(f"Request failed: {sanitized_msg}") from e

        raise IndexerError("Max retries exceeded")

    def _request(self, path: str, body: Dict[str, Any]) -> Any:
        """
        POST to a Subscan endpoint with automatic 429 retry and exponential backoff.

        Args:
            path: Endpoint path (e.g. /api/scan/extrinsic)
            body: JSON request body

        Returns:
            The 'data' field of the Subscan response (may be None)

        Raises:
            IndexerError: For API errors
            IndexerResponseError: If the response is not a Subscan envelope
        """
        url = f"{self.base_url}{path}"
        response = self._execute_with_retry(
            lambda: self.session.post(url, json=body, timeout=self.timeout)
        )
        try:
            data = response.json()
        except ValueError as e:
            raise IndexerResponseError("Response is not JSON") from e

        if not isinstance(data, dict) or "code" not in data:
            raise IndexerResponseError("Response is not a Subscan envelope")
        if data["code"] != 0:
            raise IndexerError(
                f"API error: {data.get('message', data['code'])}",
                status_code=data["code"],
            )

        return data.get("data")

    def _to_transfer_record(self, item: Any) -> RawTransferRecord:
        if not isinstance(item, dict):
            raise IndexerResponseError("Transfer record is not an object")

        asset_id = item.get("asset_unique_id") or ""
        if not asset_id or asset_id == self.native_symbol:
            asset_id = NATIVE_ASSET

        # amount_v2 is in raw units; amount is already scaled for display
        amount = item.get("amount_v2")
        if amount in (None, ""):
            amount = _require(item, "amount")

        try:
            block_number = int(_require(item, "block_num"))
            timestamp = int(_require(item, "block_timestamp"))
        except (TypeError, ValueError) as e:
            raise IndexerResponseError("Transfer block fields are not integers") from e

        return RawTransferRecord(
            locator=_parse_locator(_require(item, "extrinsic_index")),
            block_number=block_number,
            timestamp=timestamp,
            sender=str(_require(item, "from")),
            recipient=str(_require(item, "to")),
            asset_id=asset_id,
            asset_symbol=str(item.get("asset_symbol") or self.native_symbol),
            amount=str(amount),
            fee=str(item.get("fee") or "0"),
            success=bool(item.get("success", False)),
            tx_hash=str(item.get("hash") or ""),
        )

    def fetch_transfers(
        self,
        address: Optional[str] = None,
        locator: Optional[Locator] = None,
        asset_unique_id: Optional[str] = None,
        page: int = 0,
        row: int = 20,
        success: bool = True,
    ) -> List[RawTransferRecord]:
        """
        Get transfers for an address or a single extrinsic.

        Args:
            address: Account whose transfers to list
            locator: Restrict to the transfers of one extrinsic
            asset_unique_id: Restrict to one asset
            page: Page number (0-based)
            row: Page size
            success: Only successful transfers

        Returns:
            List of RawTransferRecord objects (empty if none)
        """
        body: Dict[str, Any] = {"row": row, "page": page, "success": success}
        if address is not None:
            body["address"] = address
        if locator is not None:
            body["extrinsic_index"] = str(locator)
        if asset_unique_id is not None:
            body["asset_unique_id"] = asset_unique_id

        data = self._request("/api/v2/scan/transfers", body)
        transfers = (data or {}).get("transfers") or []
        if not isinstance(transfers, list):
            raise IndexerResponseError("Transfer list is not an array")

        return [self._to_transfer_record(item) for item in transfers]

    def fetch_extrinsic_params(self, locators: List[Locator]) -> List[RawExtrinsicParams]:
        """
        Get the call parameters of a set of extrinsics.

        Args:
            locators: Extrinsics to look up

        Returns:
            List of RawExtrinsicParams objects
        """
        if not locators:
            return []

        data = self._request(
            "/api/scan/extrinsic/params",
            {"extrinsic_index": [str(locator) for locator in locators]},
        )
        if data is None:
            return []
        if not isinstance(data, list):
            raise IndexerResponseError("Extrinsic params are not an array")

        records: List[RawExtrinsicParams] = []
        for item in data:
            if not isinstance(item, dict):
                raise IndexerResponseError("Extrinsic params record is not an object")
            params = item.get("params") or []
            if not isinstance(params, list):
                raise IndexerResponseError("Extrinsic params are not a list")
            records.append(
                RawExtrinsicParams(
                    locator=_parse_locator(_require(item, "extrinsic_index")),
                    params=[_parse_call_param(p) for p in params],
                )
            )

        return records

    def resolve_locator(self, tx_hash: str) -> Locator:
        """
        Resolve a transaction hash to its extrinsic locator.

        Raises:
            NotFoundError: If the indexer does not know the hash
        """
        data = self._request("/api/scan/extrinsic", {"hash": tx_hash})
        if not data or not data.get("extrinsic_index"):
            raise NotFoundError(f"No extrinsic found for hash {tx_hash}")
        return _parse_locator(data["extrinsic_index"])

    def get_native_token_info(self, network: Optional[str] = None) -> Dict[str, Any]:
        """
        Get native token info for a network.

        Args:
            network: Target network (defaults to the client's network)

        Returns:
            Dict with symbol, decimals and ss58_format
        """
        network = network or self.network
        if network not in NATIVE_TOKENS:
            raise ValueError(f"Unsupported network: {network}")
        return NATIVE_TOKENS[network].copy()

import time
import logging
from typing import Optional, List, Dict, Any, Protocol
from decimal import Decimal, InvalidOperation
import requests

from .config import Config
from .exceptions import SourceUnavailable
from .models import RawTransaction, TokenBalance, TokenMetadata
from .utils import is_valid_solana_address

# Set up logging
logger = logging.getLogger(__name__)


class TransactionSource(Protocol):
    """Anything that pages an account's transactions, newest first."""

    def get_page(self, account_address: str, page_limit: int,
                 before: Optional[str] = None) -> List[RawTransaction]:
        ...


def _parse_ui_amount(token_amount: Dict[str, Any]) -> Decimal:
    """Read a UI amount, preferring the exact string form. Null means zero."""
    raw = token_amount.get("uiAmountString")
    if raw is None:
        raw = token_amount.get("uiAmount")
    if raw is None:
        return Decimal("0")
    try:
        return Decimal(str(raw))
    except InvalidOperation:
        logger.warning(f"Unparseable token amount: {raw}")
        return Decimal("0")


def _parse_block_time(value: Any) -> Optional[int]:
    """Block times are unix seconds; the node reports null when unknown."""
    if value is None:
        return None
    return int(value)


def _parse_balances(entries: Optional[List[Dict[str, Any]]]) -> Optional[List[TokenBalance]]:
    if entries is None:
        return None

    balances = []
    for entry in entries:
        balances.append(TokenBalance(
            owner=entry.get("owner", ""),
            mint=entry.get("mint", ""),
            ui_amount=_parse_ui_amount(entry.get("uiTokenAmount") or {})
        ))
    return balances


def parse_transaction(data: Dict[str, Any]) -> RawTransaction:
    """Convert a jsonParsed getTransaction result into a RawTransaction."""
    meta = data.get("meta") or {}
    transaction = data.get("transaction") or {}

    return RawTransaction(
        signatures=list(transaction.get("signatures") or []),
        block_time=_parse_block_time(data.get("blockTime")),
        failed=meta.get("err") is not None,
        pre_token_balances=_parse_balances(meta.get("preTokenBalances")),
        post_token_balances=_parse_balances(meta.get("postTokenBalances"))
    )


class HeliusClient:
    """Client for Solana JSON-RPC served by Helius."""

    def __init__(self, config: Config, session: Optional[requests.Session] = None):
        self.config = config
        self.rpc_url = config.rpc_url
        self.session = session or requests.Session()
        self._request_id = 0

    def _post(self, method: str, payload: Any) -> Any:
        """Send a JSON-RPC payload and return the decoded body."""
        try:
            response = self.session.post(
                self.rpc_url, json=payload, timeout=self.config.request_timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise SourceUnavailable(f"Helius {method} request failed: {e}") from e
        except ValueError as e:
            raise SourceUnavailable(
                f"Helius {method} returned invalid JSON: {e}") from e

        # Rate limiting
        time.sleep(self.config.rate_limit_delay)

        return data

    @staticmethod
    def _check_error(method: str, data: Any):
        if not isinstance(data, dict):
            raise SourceUnavailable(f"Helius {method} returned an unexpected response")
        if data.get("error"):
            error = data["error"]
            message = error.get("message", "Unknown error") if isinstance(
                error, dict) else str(error)
            raise SourceUnavailable(f"Helius API error in {method}: {message}")

    def _next_call(self, method: str, params: Any) -> Dict[str, Any]:
        self._request_id += 1
        return {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params
        }

    def _make_request(self, method: str, params: Any) -> Any:
        """Make a JSON-RPC call and return its result."""
        data = self._post(method, self._next_call(method, params))
        self._check_error(method, data)
        return data.get("result")

    def _make_batch_request(self, method: str, params_list: List[Any]) -> List[Any]:
        """Make one JSON-RPC batch call and return results in request order."""
        if not params_list:
            return []

        calls = [self._next_call(method, params) for params in params_list]
        data = self._post(method, calls)
        if not isinstance(data, list):
            # A whole-batch failure comes back as a single error object
            self._check_error(method, data)
            raise SourceUnavailable(f"Helius {method} batch returned no results")

        results = {}
        for item in data:
            self._check_error(method, item)
            results[item.get("id")] = item.get("result")

        return [results.get(call["id"]) for call in calls]

    def get_signatures_for_address(self, address: str, limit: int = 100,
                                   before: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get signature records for an address, newest first."""
        options: Dict[str, Any] = {"limit": limit}
        if before:
            options["before"] = before

        return self._make_request("getSignaturesForAddress", [address, options]) or []

    def get_transactions(self, signatures: List[str]) -> List[Optional[Dict[str, Any]]]:
        """Get parsed transactions in one batch; None where the node does not have one."""
        options = {
            "encoding": "jsonParsed",
            "maxSupportedTransactionVersion": 0,
            "commitment": "confirmed"
        }
        return self._make_batch_request(
            "getTransaction", [[signature, options] for signature in signatures])

    def get_page(self, account_address: str, page_limit: int,
                 before: Optional[str] = None) -> List[RawTransaction]:
        """Get one page of parsed transactions for an account, newest first."""
        signature_infos = self.get_signatures_for_address(
            account_address, page_limit, before)
        bodies = self.get_transactions(
            [info.get("signature") for info in signature_infos])

        transactions = []
        for info, data in zip(signature_infos, bodies):
            signature = info.get("signature")

            if data is None:
                # Keep the signature in the page so the cursor stays correct
                logger.warning(
                    f"Transaction {signature} not available, keeping it without balances")
                transactions.append(RawTransaction(
                    signatures=[signature],
                    block_time=_parse_block_time(info.get("blockTime")),
                    failed=info.get("err") is not None
                ))
                continue

            transaction = parse_transaction(data)
            if not transaction.signatures:
                transaction.signatures = [signature]
            if transaction.block_time is None:
                transaction.block_time = _parse_block_time(info.get("blockTime"))
            transactions.append(transaction)

        logger.debug(
            f"Fetched page of {len(transactions)} transactions for {account_address} (before={before})")
        return transactions

    def get_token_metadata(self, mint: str) -> Optional[TokenMetadata]:
        """Fetch name and symbol for a token via the DAS getAsset method."""
        if not is_valid_solana_address(mint):
            return None

        try:
            asset = self._make_request("getAsset", {"id": mint})
        except SourceUnavailable as e:
            logger.warning(f"Token metadata lookup failed for {mint}: {e}")
            return None

        if not asset:
            return None

        metadata = (asset.get("content") or {}).get("metadata") or {}
        token_info = asset.get("token_info") or {}
        return TokenMetadata(
            mint=mint,
            name=metadata.get("name") or "Unknown Token",
            symbol=metadata.get("symbol") or token_info.get("symbol") or "UNKNOWN",
            decimals=token_info.get("decimals")
        )

"""
Data models for SPL token trader analysis.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any, Set
from decimal import Decimal, InvalidOperation

from .config import Config
from .exceptions import ValidationError
from .utils import is_valid_solana_address, parse_datetime

TRANSACTION_TYPES = ("buy", "sell", "both")

DEFAULT_MAX_WALLETS = 50
DEFAULT_MIN_AMOUNT = Decimal("0")
DEFAULT_MAX_AMOUNT = Decimal("1000000")


def _to_decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{name} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{name} must be a finite number")
    return amount


def _to_positive_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a positive integer")
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{name} must be a positive integer")
    if not number.is_finite() or number != number.to_integral_value() or number <= 0:
        raise ValidationError(f"{name} must be a positive integer")
    return int(number)


@dataclass(frozen=True)
class AnalysisRequest:
    """One analysis call: which token, which window, which rows to keep."""
    token_address: str
    start_time: datetime
    end_time: datetime
    max_wallets: int = DEFAULT_MAX_WALLETS
    transaction_type: str = "both"  # 'buy', 'sell' or 'both'
    min_amount: Decimal = DEFAULT_MIN_AMOUNT
    max_amount: Decimal = DEFAULT_MAX_AMOUNT

    @classmethod
    def from_payload(cls, payload: Dict[str, Any],
                     defaults: Optional[Config] = None) -> "AnalysisRequest":
        """
        Build a request from the JSON boundary shape.

        Required: tokenAddress, startDate, endDate (ISO-8601). Optional fields
        fall back to the configured defaults. Raises ValidationError.
        """
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object.")

        token_address = payload.get("tokenAddress")
        start_date = payload.get("startDate")
        end_date = payload.get("endDate")
        if not token_address or not start_date or not end_date:
            raise ValidationError("Missing required parameters.")

        if not isinstance(token_address, str) or not is_valid_solana_address(token_address):
            raise ValidationError("Invalid Solana SPL Token Address.")

        try:
            start_time = parse_datetime(start_date)
            end_time = parse_datetime(end_date)
        except (TypeError, ValueError):
            raise ValidationError(
                "startDate and endDate must be ISO-8601 timestamps.")

        max_wallets = payload.get("maxWallets")
        if max_wallets is None:
            max_wallets = defaults.max_wallets if defaults else DEFAULT_MAX_WALLETS
        max_wallets = _to_positive_int(max_wallets, "maxWallets")

        transaction_type = payload.get("transactionType") or "both"
        if transaction_type not in TRANSACTION_TYPES:
            raise ValidationError(
                "transactionType must be one of: buy, sell, both")

        min_amount = payload.get("minAmount")
        if min_amount is None:
            min_amount = defaults.min_amount if defaults else DEFAULT_MIN_AMOUNT
        min_amount = _to_decimal(min_amount, "minAmount")
        if min_amount < 0:
            raise ValidationError("minAmount must not be negative")

        max_amount = payload.get("maxAmount")
        if max_amount is None:
            max_amount = defaults.max_amount if defaults else DEFAULT_MAX_AMOUNT
        max_amount = _to_decimal(max_amount, "maxAmount")
        if max_amount < min_amount:
            raise ValidationError("maxAmount must be greater than or equal to minAmount")

        return cls(
            token_address=token_address,
            start_time=start_time,
            end_time=end_time,
            max_wallets=max_wallets,
            transaction_type=transaction_type,
            min_amount=min_amount,
            max_amount=max_amount,
        )


@dataclass
class TokenBalance:
    """Token balance snapshot for one owner and mint."""
    owner: str
    mint: str
    ui_amount: Decimal


@dataclass
class RawTransaction:
    """A transaction as returned by the transaction source."""
    signatures: List[str]
    block_time: Optional[int]  # None when the source has no timestamp
    failed: bool = False
    # None means the source did not supply the snapshot collection
    pre_token_balances: Optional[List[TokenBalance]] = None
    post_token_balances: Optional[List[TokenBalance]] = None

    @property
    def signature(self) -> str:
        return self.signatures[0] if self.signatures else ""


@dataclass(frozen=True)
class ResultRow:
    """A single classified balance change."""
    wallet: str
    type: str  # 'buy' or 'sell'
    amount: Decimal
    date: str
    is_first_buy: Optional[bool]
    sell_percentage: Optional[Decimal]
    tx_signature: str

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape used by the HTTP boundary and exports."""
        return {
            "wallet": self.wallet,
            "type": self.type,
            "amount": float(self.amount),
            "date": self.date,
            "isFirstBuy": self.is_first_buy,
            "sellPercentage": float(self.sell_percentage) if self.sell_percentage is not None else None,
            "txSignature": self.tx_signature,
        }


@dataclass
class TokenMetadata:
    """Display information about an SPL token."""
    mint: str
    name: str
    symbol: str
    decimals: Optional[int] = None


@dataclass
class FirstBuyTracker:
    """Wallets that already recorded a buy within one analysis call."""
    wallets: Set[str] = field(default_factory=set)

    def record_buy(self, wallet: str) -> bool:
        """Record a buy and return True if it is the wallet's first."""
        if wallet in self.wallets:
            return False
        self.wallets.add(wallet)
        return True

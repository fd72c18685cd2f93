"""
Transaction analysis pipeline: window collection, balance-delta
classification and wallet limiting.
"""

from typing import List, Optional, Union, Iterable, Set
from datetime import datetime
from decimal import Decimal
import logging

from .api_clients import TransactionSource
from .models import (
    AnalysisRequest,
    FirstBuyTracker,
    RawTransaction,
    ResultRow,
    TokenBalance,
)
from .utils import to_iso_timestamp

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


def _as_timestamp(value: Union[datetime, int, float]) -> float:
    if isinstance(value, datetime):
        return value.timestamp()
    return float(value)


def collect_transactions(source: TransactionSource, token_address: str,
                         start_time: Union[datetime, int, float],
                         end_time: Union[datetime, int, float],
                         page_size: int = DEFAULT_PAGE_SIZE) -> List[RawTransaction]:
    """
    Page the source until transactions older than start_time are reached.

    Pages arrive newest first. The cursor for the next page is always the
    last transaction of the current one, whether or not it was retained.
    Transactions without a block time are skipped and never end paging.
    Returns the transactions with start_time <= block_time <= end_time,
    oldest first.
    """
    start = _as_timestamp(start_time)
    end = _as_timestamp(end_time)
    if start > end:
        logger.info(f"Empty window for {token_address}: start is after end")
        return []

    transactions: List[RawTransaction] = []
    before: Optional[str] = None
    pages = 0
    reached_start = False

    while not reached_start:
        page = source.get_page(token_address, page_size, before)
        if not page:
            break
        pages += 1

        before = page[-1].signature

        for tx in page:
            if tx.block_time is None:
                logger.debug(f"Skipping transaction {tx.signature} without block time")
                continue
            if tx.block_time < start:
                reached_start = True
                break
            if tx.block_time <= end:
                transactions.append(tx)

    transactions.sort(key=lambda tx: tx.block_time)
    logger.info(
        f"Collected {len(transactions)} transactions in window from {pages} pages for {token_address}")
    return transactions


def _balances_for_mint(balances: Optional[List[TokenBalance]],
                       mint: str) -> Optional[List[TokenBalance]]:
    if balances is None:
        return None
    return [b for b in balances if b.mint == mint]


def analyze_transactions(transactions: Iterable[RawTransaction],
                         request: AnalysisRequest,
                         tracker: Optional[FirstBuyTracker] = None) -> List[ResultRow]:
    """
    Classify each wallet's token-balance change per transaction.

    A positive delta is a buy, a negative one a sell. Sell percentage uses
    post + |delta| as the pre-transaction balance, which is only exact when
    nothing else moved the wallet's balance in the same transaction.
    """
    if tracker is None:
        tracker = FirstBuyTracker()

    rows: List[ResultRow] = []
    mint = request.token_address

    for tx in transactions:
        if tx.failed:
            continue

        post_balances = _balances_for_mint(tx.post_token_balances, mint)
        pre_balances = _balances_for_mint(tx.pre_token_balances, mint)
        if post_balances is None or pre_balances is None:
            logger.debug(f"Skipping transaction {tx.signature} without token balances")
            continue

        for post in post_balances:
            pre = next((b for b in pre_balances if b.owner == post.owner), None)
            pre_amount = pre.ui_amount if pre else Decimal("0")
            post_amount = post.ui_amount
            change = post_amount - pre_amount

            if change == 0:
                continue

            amount = abs(change)
            if amount < request.min_amount or amount > request.max_amount:
                continue

            tx_type = "buy" if change > 0 else "sell"
            if request.transaction_type != "both" and request.transaction_type != tx_type:
                continue

            is_first_buy = None
            sell_percentage = None
            if tx_type == "buy":
                is_first_buy = tracker.record_buy(post.owner)
            else:
                sell_percentage = amount / (post_amount + amount) * 100

            rows.append(ResultRow(
                wallet=post.owner,
                type=tx_type,
                amount=amount,
                date=to_iso_timestamp(tx.block_time),
                is_first_buy=is_first_buy,
                sell_percentage=sell_percentage,
                tx_signature=tx.signature
            ))

    logger.info(f"Classified {len(rows)} balance changes")
    return rows


def limit_wallets(rows: Iterable[ResultRow], max_wallets: int) -> List[ResultRow]:
    """
    Keep rows for at most max_wallets distinct wallets.

    Wallets are admitted in row order. Once the cap is reached, rows of new
    wallets are dropped while admitted wallets keep all their rows.
    """
    admitted: Set[str] = set()
    limited = []

    for row in rows:
        if row.wallet not in admitted:
            if len(admitted) >= max_wallets:
                continue
            admitted.add(row.wallet)
        limited.append(row)

    return limited


def run_analysis(source: TransactionSource, request: AnalysisRequest,
                 page_size: int = DEFAULT_PAGE_SIZE) -> List[ResultRow]:
    """Run collection, classification and limiting for one request."""
    transactions = collect_transactions(
        source, request.token_address, request.start_time, request.end_time, page_size)
    rows = analyze_transactions(transactions, request, FirstBuyTracker())
    limited = limit_wallets(rows, request.max_wallets)

    logger.info(
        f"Analysis of {request.token_address}: {len(transactions)} transactions, "
        f"{len(rows)} rows, {len(limited)} after wallet limit")
    return limited

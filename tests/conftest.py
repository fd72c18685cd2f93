from datetime import datetime, timezone
from decimal import Decimal

import pytest

from spl_trader_analysis.models import AnalysisRequest, RawTransaction, TokenBalance

MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
OTHER_MINT = "So11111111111111111111111111111111111111112"

# 2023-10-27T10:00:00Z
BASE_TIME = 1698400800


class FakeSource:
    """In-memory transaction source paging newest first by signature cursor."""

    def __init__(self, transactions, error=None):
        self.transactions = sorted(
            transactions, key=lambda tx: tx.block_time, reverse=True)
        self.error = error
        self.calls = []

    def get_page(self, account_address, page_limit, before=None):
        self.calls.append((account_address, page_limit, before))
        if self.error:
            raise self.error

        start = 0
        if before is not None:
            signatures = [tx.signature for tx in self.transactions]
            start = signatures.index(before) + 1
        return self.transactions[start:start + page_limit]


def build_tx(signature, block_time, balances=(), mint=MINT, failed=False,
             pre_missing=False, post_missing=False):
    """
    Build a RawTransaction from (owner, pre, post) tuples.

    A pre of None leaves the owner out of the pre-balance snapshots.
    """
    pre_balances = []
    post_balances = []
    for owner, pre, post in balances:
        if pre is not None:
            pre_balances.append(TokenBalance(owner, mint, Decimal(str(pre))))
        post_balances.append(TokenBalance(owner, mint, Decimal(str(post))))

    return RawTransaction(
        signatures=[signature],
        block_time=block_time,
        failed=failed,
        pre_token_balances=None if pre_missing else pre_balances,
        post_token_balances=None if post_missing else post_balances,
    )


@pytest.fixture
def make_tx():
    return build_tx


@pytest.fixture
def make_request():
    def _make(**overrides):
        fields = dict(
            token_address=MINT,
            start_time=datetime.fromtimestamp(BASE_TIME - 86400, tz=timezone.utc),
            end_time=datetime.fromtimestamp(BASE_TIME + 86400, tz=timezone.utc),
            max_wallets=50,
            transaction_type="both",
            min_amount=Decimal("0"),
            max_amount=Decimal("1000000"),
        )
        fields.update(overrides)
        return AnalysisRequest(**fields)
    return _make


@pytest.fixture
def fake_source():
    return FakeSource

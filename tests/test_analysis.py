from datetime import datetime, timezone
from decimal import Decimal

import pytest

from spl_trader_analysis.analysis import (
    collect_transactions,
    analyze_transactions,
    limit_wallets,
    run_analysis,
)
from spl_trader_analysis.exceptions import SourceUnavailable
from spl_trader_analysis.models import FirstBuyTracker, ResultRow

from conftest import BASE_TIME, MINT, OTHER_MINT


def _row(wallet, signature="sig"):
    return ResultRow(wallet, "buy", Decimal("1"), "2023-10-27T10:00:00.000Z",
                     True, None, signature)


class TestCollectTransactions:

    def test_start_after_end_is_empty(self, fake_source, make_tx):
        source = fake_source([make_tx("s1", 100)])

        assert collect_transactions(source, MINT, 200, 100) == []
        assert source.calls == []

    def test_pages_until_history_is_exhausted(self, fake_source, make_tx):
        source = fake_source([make_tx(f"s{i}", i) for i in range(1, 251)])

        result = collect_transactions(source, MINT, 0, 1000, page_size=100)

        assert [tx.block_time for tx in result] == list(range(1, 251))
        assert [call[2] for call in source.calls] == [None, "s151", "s51", "s1"]
        assert all(call[:2] == (MINT, 100) for call in source.calls)

    def test_stops_at_start_boundary(self, fake_source, make_tx):
        source = fake_source([make_tx(f"s{i}", i) for i in range(1, 301)])

        result = collect_transactions(source, MINT, 250, 1000, page_size=100)

        assert [tx.block_time for tx in result] == list(range(250, 301))
        assert len(source.calls) == 1

    def test_cursor_advances_past_pages_newer_than_window(self, fake_source, make_tx):
        source = fake_source([make_tx(f"s{i}", i) for i in range(1, 301)])

        result = collect_transactions(source, MINT, 10, 50, page_size=100)

        assert [tx.block_time for tx in result] == list(range(10, 51))
        assert [call[2] for call in source.calls] == [None, "s201", "s101"]

    def test_window_bounds_are_inclusive(self, fake_source, make_tx):
        source = fake_source([make_tx(f"s{i}", i) for i in (9, 10, 20, 21)])

        result = collect_transactions(source, MINT, 10, 20)

        assert [tx.signature for tx in result] == ["s10", "s20"]

    def test_timeless_transaction_does_not_end_paging(self, fake_source, make_tx):
        page = [make_tx("s300", 300), make_tx("unknown", None), make_tx("s200", 200)]
        source = fake_source([])
        source.transactions = page

        result = collect_transactions(source, MINT, 100, 400)

        assert [tx.signature for tx in result] == ["s200", "s300"]
        assert [call[2] for call in source.calls] == [None, "s200"]

    def test_accepts_datetimes(self, fake_source, make_tx):
        source = fake_source([make_tx("s1", BASE_TIME)])
        start = datetime.fromtimestamp(BASE_TIME, tz=timezone.utc)

        result = collect_transactions(source, MINT, start, start)

        assert [tx.signature for tx in result] == ["s1"]

    def test_empty_history(self, fake_source):
        source = fake_source([])

        assert collect_transactions(source, MINT, 0, 100) == []
        assert len(source.calls) == 1

    def test_source_errors_propagate(self, fake_source):
        source = fake_source([], error=SourceUnavailable("down"))

        with pytest.raises(SourceUnavailable):
            collect_transactions(source, MINT, 0, 100)


class TestAnalyzeTransactions:

    def test_new_holder_is_first_buy(self, make_tx, make_request):
        tx = make_tx("sig1", BASE_TIME, [("W", None, 10)])

        rows = analyze_transactions([tx], make_request())

        assert len(rows) == 1
        row = rows[0]
        assert row.wallet == "W"
        assert row.type == "buy"
        assert row.amount == 10
        assert row.is_first_buy is True
        assert row.sell_percentage is None
        assert row.date == "2023-10-27T10:00:00.000Z"
        assert row.tx_signature == "sig1"

    def test_sell_percentage(self, make_tx, make_request):
        tx = make_tx("sig1", BASE_TIME, [("W", 100, 40)])

        rows = analyze_transactions([tx], make_request())

        assert len(rows) == 1
        assert rows[0].type == "sell"
        assert rows[0].amount == 60
        assert rows[0].sell_percentage == 60
        assert rows[0].is_first_buy is None

    def test_full_exit_is_hundred_percent(self, make_tx, make_request):
        tx = make_tx("sig1", BASE_TIME, [("W", 25, 0)])

        rows = analyze_transactions([tx], make_request())

        assert rows[0].sell_percentage == 100

    def test_skips_failed_transactions(self, make_tx, make_request):
        tx = make_tx("sig1", BASE_TIME, [("W", None, 10)], failed=True)

        assert analyze_transactions([tx], make_request()) == []

    @pytest.mark.parametrize("missing", ["pre_missing", "post_missing"])
    def test_skips_transactions_without_snapshots(self, make_tx, make_request, missing):
        tx = make_tx("sig1", BASE_TIME, [("W", 0, 10)], **{missing: True})

        assert analyze_transactions([tx], make_request()) == []

    def test_ignores_other_mints(self, make_tx, make_request):
        tx = make_tx("sig1", BASE_TIME, [("W", 0, 10)], mint=OTHER_MINT)

        assert analyze_transactions([tx], make_request()) == []

    def test_skips_zero_change(self, make_tx, make_request):
        tx = make_tx("sig1", BASE_TIME, [("W", 10, 10)])

        assert analyze_transactions([tx], make_request()) == []

    def test_amount_filter_is_inclusive(self, make_tx, make_request):
        tx = make_tx("sig1", BASE_TIME, [
            ("below", 0, "9.99"),
            ("at_min", 0, 10),
            ("at_max", 0, 100),
            ("above", 0, "100.01"),
        ])
        request = make_request(min_amount=Decimal("10"), max_amount=Decimal("100"))

        rows = analyze_transactions([tx], request)

        assert [r.wallet for r in rows] == ["at_min", "at_max"]

    def test_amount_filter_applies_to_sells(self, make_tx, make_request):
        tx = make_tx("sig1", BASE_TIME, [("small", 5, 1), ("large", 500, 100)])
        request = make_request(min_amount=Decimal("10"))

        rows = analyze_transactions([tx], request)

        assert [(r.wallet, r.amount) for r in rows] == [("large", 400)]

    @pytest.mark.parametrize("tx_type,expected", [
        ("buy", ["buyer"]),
        ("sell", ["seller"]),
        ("both", ["buyer", "seller"]),
    ])
    def test_transaction_type_filter(self, make_tx, make_request, tx_type, expected):
        tx = make_tx("sig1", BASE_TIME, [("buyer", 0, 5), ("seller", 5, 0)])

        rows = analyze_transactions([tx], make_request(transaction_type=tx_type))

        assert [r.wallet for r in rows] == expected

    def test_first_buy_is_only_the_earliest(self, make_tx, make_request):
        transactions = [
            make_tx("t1", BASE_TIME, [("W", None, 10)]),
            make_tx("t2", BASE_TIME + 60, [("W", 10, 4)]),
            make_tx("t3", BASE_TIME + 120, [("W", 4, 20), ("V", None, 1)]),
        ]

        rows = analyze_transactions(transactions, make_request())

        assert [(r.wallet, r.type, r.is_first_buy) for r in rows] == [
            ("W", "buy", True),
            ("W", "sell", None),
            ("W", "buy", False),
            ("V", "buy", True),
        ]

    def test_sell_filter_does_not_consume_first_buy(self, make_tx, make_request):
        tracker = FirstBuyTracker()
        tx = make_tx("t1", BASE_TIME, [("W", None, 10)])

        analyze_transactions([tx], make_request(transaction_type="sell"), tracker)

        assert "W" not in tracker.wallets

    def test_uses_given_tracker(self, make_tx, make_request):
        tracker = FirstBuyTracker({"W"})
        tx = make_tx("t1", BASE_TIME, [("W", None, 10)])

        rows = analyze_transactions([tx], make_request(), tracker)

        assert rows[0].is_first_buy is False

    def test_preserves_source_balance_order(self, make_tx, make_request):
        tx = make_tx("t1", BASE_TIME, [("C", 0, 1), ("A", 0, 2), ("B", 3, 0)])

        rows = analyze_transactions([tx], make_request())

        assert [r.wallet for r in rows] == ["C", "A", "B"]


class TestLimitWallets:

    def test_caps_distinct_wallets_admitted(self):
        rows = [_row(w) for w in ["A", "B", "A", "C", "B", "D", "A"]]

        limited = limit_wallets(rows, 2)

        assert [r.wallet for r in limited] == ["A", "B", "A", "B", "A"]

    def test_admitted_wallets_keep_all_rows(self):
        rows = [_row("A", f"sig{i}") for i in range(5)]

        limited = limit_wallets(rows, 1)

        assert len(limited) == 5

    def test_under_cap_keeps_everything(self):
        rows = [_row(w) for w in ["A", "B"]]

        assert limit_wallets(rows, 10) == rows

    def test_empty(self):
        assert limit_wallets([], 3) == []


class TestRunAnalysis:

    def test_end_to_end(self, fake_source, make_tx, make_request):
        source = fake_source([
            make_tx("t1", BASE_TIME, [("W1", None, 10)]),
            make_tx("t2", BASE_TIME + 10, [("W2", None, 5), ("W1", 10, 4)]),
            make_tx("t3", BASE_TIME + 20, [("W3", None, 1)]),
            make_tx("t4", BASE_TIME + 30, [("W1", 4, 8)]),
            make_tx("old", BASE_TIME - 2 * 86400, [("W4", None, 1)]),
        ])

        rows = run_analysis(source, make_request(max_wallets=2), page_size=2)

        assert [(r.wallet, r.type, r.tx_signature) for r in rows] == [
            ("W1", "buy", "t1"),
            ("W2", "buy", "t2"),
            ("W1", "sell", "t2"),
            ("W1", "buy", "t4"),
        ]
        assert rows[2].sell_percentage == 60
        assert rows[3].is_first_buy is False
        assert len({r.wallet for r in rows}) <= 2

    def test_amounts_stay_within_range(self, fake_source, make_tx, make_request):
        source = fake_source([
            make_tx(f"t{i}", BASE_TIME + i, [("W%d" % i, 0, i * 7)])
            for i in range(1, 30)
        ])
        request = make_request(min_amount=Decimal("20"), max_amount=Decimal("100"))

        rows = run_analysis(source, request, page_size=10)

        assert rows
        assert all(Decimal("20") <= r.amount <= Decimal("100") for r in rows)

    def test_each_call_has_fresh_first_buy_state(self, fake_source, make_tx, make_request):
        source = fake_source([make_tx("t1", BASE_TIME, [("W", None, 10)])])

        first = run_analysis(source, make_request())
        second = run_analysis(source, make_request())

        assert first[0].is_first_buy is True
        assert second[0].is_first_buy is True

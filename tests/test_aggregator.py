"""Tests for asset summary building (grouping, dust filter, percentages)."""

from decimal import Decimal

from crypto_oneview.core.aggregator import build_asset_summaries, total_value_usd
from crypto_oneview.core.models import BalanceRecord, PriceQuote


def _record(symbol: str, amount: str, source: str = "binance_cex", account_type: str | None = "spot") -> BalanceRecord:
    return BalanceRecord(symbol=symbol, amount=Decimal(amount), source=source, account_type=account_type)


def _prices(**prices: str) -> dict[str, PriceQuote]:
    return {
        symbol: PriceQuote(symbol=symbol, price_usd=Decimal(price), timestamp=0) for symbol, price in prices.items()
    }


def test_groups_records_by_symbol():
    """Test that records of one symbol collapse into one summary."""
    records = [
        _record("BTC", "1", "binance_cex", "spot"),
        _record("BTC", "0.5", "okx_cex", "funding"),
        _record("ETH", "2", "ledger_cold", None),
    ]

    summaries = build_asset_summaries(records, _prices(BTC="50000", ETH="3000"))

    assert [s.symbol for s in summaries] == ["BTC", "ETH"]
    btc = summaries[0]
    assert btc.total_amount == Decimal("1.5")
    assert btc.price_usd == Decimal("50000")
    assert btc.value_usd == Decimal("75000")
    assert len(btc.sources) == 2


def test_merges_same_source_and_account_type():
    """Test that one (source, account_type) pair yields one breakdown entry."""
    records = [
        _record("BTC", "1", "binance_cex", "spot"),
        _record("BTC", "2", "binance_cex", "spot"),
        _record("BTC", "4", "binance_cex", "funding"),
    ]

    summary = build_asset_summaries(records, _prices(BTC="10"))[0]

    assert summary.total_amount == Decimal("7")
    breakdown = {(s.source, s.account_type): s.amount for s in summary.sources}
    assert breakdown == {
        ("binance_cex", "spot"): Decimal("3"),
        ("binance_cex", "funding"): Decimal("4"),
    }
    assert sum(s.amount for s in summary.sources) == summary.total_amount


def test_dust_boundary():
    """Test that priced holdings under 1 USD are dropped and at or above are kept."""
    below = build_asset_summaries([_record("XRP", "2.0")], _prices(XRP="0.49"))
    above = build_asset_summaries([_record("XRP", "2.0")], _prices(XRP="0.51"))
    exact = build_asset_summaries([_record("XRP", "2.0")], _prices(XRP="0.5"))

    assert below == []
    assert [s.symbol for s in above] == ["XRP"]
    assert above[0].value_usd == Decimal("1.02")
    assert [s.symbol for s in exact] == ["XRP"]


def test_unpriced_assets_are_kept():
    """Test that assets without a price survive the dust filter with zero value."""
    summaries = build_asset_summaries([_record("OBSCURE", "12345")], {})

    assert len(summaries) == 1
    assert summaries[0].price_usd == Decimal("0")
    assert summaries[0].value_usd == Decimal("0")
    assert summaries[0].percentage == Decimal("0")


def test_custom_dust_threshold():
    """Test that the threshold is configurable."""
    records = [_record("XRP", "2.0")]
    prices = _prices(XRP="0.49")

    assert build_asset_summaries(records, prices, dust_threshold=Decimal("0")) != []
    assert build_asset_summaries([_record("BTC", "1")], _prices(BTC="5"), dust_threshold=Decimal("10")) == []


def test_total_excludes_dust():
    """Test that dust is removed before totals and percentages are computed."""
    records = [_record("BTC", "1"), _record("SHIB", "1")]
    summaries = build_asset_summaries(records, _prices(BTC="100", SHIB="0.5"))

    assert [s.symbol for s in summaries] == ["BTC"]
    assert total_value_usd(summaries) == Decimal("100")
    assert summaries[0].percentage == Decimal("100")


def test_percentages_sum_to_100():
    """Test that retained percentages sum to 100."""
    records = [_record("BTC", "0.3"), _record("ETH", "1.7"), _record("ADA", "999"), _record("FOO", "5")]
    summaries = build_asset_summaries(records, _prices(BTC="61234.56", ETH="3012.34", ADA="0.4567"))

    total = sum(s.percentage for s in summaries)
    assert Decimal("99.99") <= total <= Decimal("100.01")
    for summary in summaries:
        assert summary.value_usd == summary.total_amount * summary.price_usd


def test_percentages_zero_when_nothing_priced():
    """Test that percentages are 0 when total value is 0."""
    summaries = build_asset_summaries([_record("FOO", "1"), _record("BAR", "2")], {})

    assert len(summaries) == 2
    assert all(s.percentage == Decimal("0") for s in summaries)


def test_sorted_by_value_descending():
    """Test ordering by USD value with ties keeping input order."""
    records = [
        _record("ADA", "10"),
        _record("BTC", "1"),
        _record("FOO", "1"),
        _record("ETH", "1"),
        _record("BAR", "1"),
    ]
    summaries = build_asset_summaries(records, _prices(ADA="0.5", BTC="100", ETH="50"))

    assert [s.symbol for s in summaries] == ["BTC", "ETH", "ADA", "FOO", "BAR"]


def test_pure_and_idempotent():
    """Test that identical inputs yield identical outputs and inputs are untouched."""
    records = [_record("BTC", "1"), _record("ETH", "2")]
    prices = _prices(BTC="100", ETH="10")

    first = build_asset_summaries(records, prices)
    second = build_asset_summaries(records, prices)

    assert first == second
    assert records[0].amount == Decimal("1")


def test_empty_records():
    """Test that no records produce no summaries."""
    assert build_asset_summaries([], _prices(BTC="1")) == []
    assert total_value_usd([]) == Decimal("0")

"""Tests for the AssetAggregator refresh pass."""

import asyncio
import json
from decimal import Decimal

import httpx
import pytest
from conftest import ETH_ADDRESS, FakeCredentials, FakeOracle, FakeWallets, wallet

from crypto_oneview.adapters import EthereumAdapter
from crypto_oneview.core.aggregator import RATE_LIMIT_HINT, AssetAggregator
from crypto_oneview.core.models import DecryptedCredential
from crypto_oneview.core.registry import AdapterRegistry

BTC_ADDRESS = "bc1qxy2kgdygjrsqtzq2n0yrf2493p83kkfjhx0wlh"
ADA_ADDRESS = "addr1qxy8example"


def chain_handler(eth_response: httpx.Response | None = None):
    """Answer BTC, ETH and ADA explorer requests; ETH can be overridden."""

    def handler(request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if host == "blockchain.info":
            address = request.url.params["active"]
            return httpx.Response(200, json={address: {"final_balance": 150_000_000, "n_tx": 3}})
        if host == "api.etherscan.io":
            if eth_response is not None:
                return eth_response
            return httpx.Response(200, json={"status": "1", "message": "OK", "result": "2000000000000000000"})
        if host == "api.koios.rest":
            return httpx.Response(200, json=[{"balance": "2500000"}])
        return httpx.Response(404)

    return handler


def three_wallets(**eth_kwargs) -> FakeWallets:
    return FakeWallets(
        [
            wallet("w-btc", "BTC", BTC_ADDRESS),
            wallet("w-eth", "ETH", ETH_ADDRESS, **eth_kwargs),
            wallet("w-ada", "ADA", ADA_ADDRESS),
        ]
    )


def refresh(run, handler, credentials=None, wallets=None, oracle=None) -> AssetAggregator:
    async def main():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            aggregator = AssetAggregator(
                credentials or FakeCredentials(),
                wallets or FakeWallets(),
                oracle or FakeOracle({"BTC": "50000", "ETH": "3000", "ADA": "0.5"}),
                client=client,
            )
            await aggregator.refresh()
            return aggregator

    return run(main())


def test_refresh_collects_all_wallets(run):
    """Test a pass where every source succeeds."""
    aggregator = refresh(run, chain_handler(), wallets=three_wallets())

    assert aggregator.errors == []
    assert aggregator.is_loading is False
    assert aggregator.last_updated is not None

    amounts = {r.symbol: r.amount for r in aggregator.records}
    assert amounts == {"BTC": Decimal("1.5"), "ETH": Decimal("2"), "ADA": Decimal("2.5")}
    assert all(r.source == "ledger_cold" for r in aggregator.records)

    symbols = [s.symbol for s in aggregator.asset_summaries]
    assert symbols == ["BTC", "ETH", "ADA"]
    assert aggregator.total_value_usd == Decimal("75000") + Decimal("6000") + Decimal("1.25")


def test_partial_failure_isolated(run):
    """Test that one failing source yields one error and the others still report."""
    handler = chain_handler(eth_response=httpx.Response(500))
    aggregator = refresh(run, handler, wallets=three_wallets())

    assert aggregator.errors == ["Ledger Cold ETH: HTTP 500"]
    assert {r.symbol for r in aggregator.records} == {"BTC", "ADA"}
    assert aggregator.last_updated is not None
    assert aggregator.is_loading is False


class CrashingEthereumAdapter(EthereumAdapter):
    """ETH adapter failing with an error outside the adapter hierarchy."""

    async def fetch(self, credential_or_address, api_key=None):
        raise RuntimeError("boom")


def test_unexpected_adapter_exception_isolated(run, monkeypatch):
    """Test that an arbitrary exception from one source is reported like any other failure."""
    monkeypatch.setitem(AdapterRegistry._adapters, ("ETH", None), CrashingEthereumAdapter)

    aggregator = refresh(run, chain_handler(), wallets=three_wallets())

    assert aggregator.errors == ["Ledger Cold ETH: boom"]
    assert {r.symbol for r in aggregator.records} == {"BTC", "ADA"}
    assert aggregator.last_updated is not None
    assert aggregator.is_loading is False


def test_non_finite_dust_threshold_rejected():
    """Test that NaN and infinite dust thresholds are refused up front."""
    for value in ("NaN", "Infinity"):
        with pytest.raises(ValueError, match="finite"):
            AssetAggregator(FakeCredentials(), FakeWallets(), FakeOracle(), dust_threshold=Decimal(value))


def test_oracle_receives_distinct_symbols(run):
    """Test that prices are requested once for the distinct symbols fetched."""
    oracle = FakeOracle({"BTC": "50000"})
    wallets = FakeWallets(
        [
            wallet("w1", "BTC", BTC_ADDRESS),
            wallet("w2", "BTC", BTC_ADDRESS, source_label="binance_hot"),
            wallet("w3", "ADA", ADA_ADDRESS),
        ]
    )

    aggregator = refresh(run, chain_handler(), wallets=wallets, oracle=oracle)

    assert oracle.calls == [{"BTC", "ADA"}]
    btc = aggregator.asset_summaries[0]
    assert btc.total_amount == Decimal("3")
    assert {s.source for s in btc.sources} == {"ledger_cold", "binance_hot"}


def test_no_sources_skips_pricing(run):
    """Test that an empty configuration completes without pricing calls."""
    oracle = FakeOracle()
    aggregator = refresh(run, chain_handler(), oracle=oracle)

    assert oracle.calls == []
    assert aggregator.records == []
    assert aggregator.errors == []
    assert aggregator.last_updated is not None


def test_rate_limit_without_api_key_suggests_key(run):
    """Test the rate-limit hint for an address without an explorer key."""
    limited = httpx.Response(200, json={"status": "0", "message": "NOTOK", "result": "Max rate limit reached"})
    aggregator = refresh(run, chain_handler(eth_response=limited), wallets=three_wallets())

    assert aggregator.errors == [f"Ledger Cold ETH: {RATE_LIMIT_HINT}"]


def test_rate_limit_with_api_key_is_not_reported(run):
    """Test that rate limiting an address with a key is only logged."""
    limited = httpx.Response(200, json={"status": "0", "message": "NOTOK", "result": "Max rate limit reached"})
    wallets = three_wallets(has_api_key=True)
    wallets.api_keys["w-eth"] = "MYKEY"

    seen_keys = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.etherscan.io":
            seen_keys.append(request.url.params.get("apikey"))
        return chain_handler(eth_response=limited)(request)

    aggregator = refresh(run, handler, wallets=wallets)

    assert seen_keys == ["MYKEY"]
    assert aggregator.errors == []
    assert {r.symbol for r in aggregator.records} == {"BTC", "ADA"}


def test_unsupported_chain_reported(run):
    """Test that a wallet on an unknown chain yields one error."""
    wallets = FakeWallets([wallet("w1", "DOGE", "D123"), wallet("w2", "BTC", BTC_ADDRESS)])
    aggregator = refresh(run, chain_handler(), wallets=wallets)

    assert aggregator.errors == ["Ledger Cold DOGE: unsupported chain"]
    assert [r.symbol for r in aggregator.records] == ["BTC"]


def binance_handler(failing_paths: set[str]):
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path in failing_paths:
            return httpx.Response(401, json={"code": -2015, "msg": "Invalid API-key, IP, or permissions for action."})
        if path == "/api/v3/account":
            return httpx.Response(
                200,
                json={"balances": [{"asset": "BTC", "free": "0.1", "locked": "0.1"}, {"asset": "XRP", "free": "0"}]},
            )
        if path == "/sapi/v1/simple-earn/flexible/position":
            return httpx.Response(200, json={"total": 1, "rows": [{"asset": "USDT", "totalAmount": "100"}]})
        if path == "/sapi/v1/simple-earn/locked/position":
            return httpx.Response(200, json={"total": 0, "rows": []})
        if path == "/sapi/v1/asset/get-funding-asset":
            return httpx.Response(200, json=[{"asset": "BTC", "free": "0.05", "locked": "0"}])
        if path in ("/fapi/v2/balance", "/dapi/v1/balance"):
            return httpx.Response(200, json=[])
        return httpx.Response(404)

    return handler


def binance_credentials() -> FakeCredentials:
    return FakeCredentials({"binance_1": ("binance", DecryptedCredential(api_key="key", secret="secret"))})


def test_exchange_account_types_fetched(run):
    """Test that every Binance account type is fetched and merged."""
    aggregator = refresh(run, binance_handler(set()), credentials=binance_credentials())

    assert aggregator.errors == []
    by_account = {(r.symbol, r.account_type): r.amount for r in aggregator.records}
    assert by_account == {
        ("BTC", "spot"): Decimal("0.2"),
        ("BTC", "funding"): Decimal("0.05"),
        ("USDT", "earn_flexible"): Decimal("100"),
    }
    assert all(r.source == "binance_cex" for r in aggregator.records)


def test_swallowed_failures_are_not_reported(run):
    """Test that earn failures are ignored while spot failures are surfaced."""
    failing = {"/sapi/v1/simple-earn/flexible/position", "/api/v3/account"}
    aggregator = refresh(run, binance_handler(failing), credentials=binance_credentials())

    assert aggregator.errors == ["Binance Spot: Invalid API-key, IP, or permissions for action."]
    assert {(r.symbol, r.account_type) for r in aggregator.records} == {("BTC", "funding")}


def test_missing_credential_is_skipped(run):
    """Test that a credential that cannot be decrypted is skipped silently."""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(500)

    credentials = FakeCredentials({"binance_1": ("binance", None)})
    aggregator = refresh(run, handler, credentials=credentials)

    assert requests == []
    assert aggregator.errors == []


def test_unsupported_exchange_reported(run):
    """Test that a credential for an exchange without adapters yields one error."""
    credentials = FakeCredentials({"kraken_1": ("kraken", DecryptedCredential(api_key="k", secret="s"))})
    wallets = FakeWallets([wallet("w", "BTC", BTC_ADDRESS)])
    aggregator = refresh(run, chain_handler(), credentials=credentials, wallets=wallets)

    assert aggregator.errors == ["kraken exchange: unsupported exchange"]
    assert [r.symbol for r in aggregator.records] == ["BTC"]


def test_refresh_replaces_previous_results(run):
    """Test that a second pass fully replaces the first one."""
    wallets = three_wallets()
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.etherscan.io":
            calls["n"] += 1
            if calls["n"] == 1:
                return httpx.Response(500)
        return chain_handler()(request)

    async def main():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            aggregator = AssetAggregator(FakeCredentials(), wallets, FakeOracle({"BTC": "1", "ETH": "1"}), client=client)
            await aggregator.refresh()
            first_errors = list(aggregator.errors)
            await aggregator.refresh()
            return aggregator, first_errors

    aggregator, first_errors = run(main())

    assert first_errors == ["Ledger Cold ETH: HTTP 500"]
    assert aggregator.errors == []
    assert sorted(r.symbol for r in aggregator.records) == ["ADA", "BTC", "ETH"]


def test_identical_passes_give_identical_summaries(run):
    """Test that refreshing twice with unchanged sources is idempotent."""

    async def main():
        async with httpx.AsyncClient(transport=httpx.MockTransport(chain_handler())) as client:
            aggregator = AssetAggregator(
                FakeCredentials(), three_wallets(), FakeOracle({"BTC": "50000", "ETH": "3000"}), client=client
            )
            await aggregator.refresh()
            first = aggregator.asset_summaries
            await aggregator.refresh()
            return first, aggregator.asset_summaries

    first, second = run(main())
    assert first == second


class ExplodingCredentials(FakeCredentials):
    """Credential registry that fails after the first pass."""

    def __init__(self) -> None:
        super().__init__()
        self.calls = 0

    def list(self):
        self.calls += 1
        if self.calls > 1:
            raise RuntimeError("registry unavailable")
        return super().list()


def test_catastrophic_failure_keeps_previous_state(run):
    """Test that an unexpected failure is reported and previous data is kept."""

    async def main():
        async with httpx.AsyncClient(transport=httpx.MockTransport(chain_handler())) as client:
            aggregator = AssetAggregator(
                ExplodingCredentials(),
                FakeWallets([wallet("w", "BTC", BTC_ADDRESS)]),
                FakeOracle({"BTC": "50000"}),
                client=client,
            )
            await aggregator.refresh()
            first_updated = aggregator.last_updated
            await aggregator.refresh()
            return aggregator, first_updated

    aggregator, first_updated = run(main())

    assert aggregator.errors == ["Refresh failed: registry unavailable"]
    assert aggregator.is_loading is False
    assert aggregator.last_updated == first_updated
    assert [r.symbol for r in aggregator.records] == ["BTC"]


class SlowOracle(FakeOracle):
    """Oracle tracking how many refresh passes price concurrently."""

    def __init__(self) -> None:
        super().__init__({"BTC": "1"})
        self.active = 0
        self.max_active = 0

    async def get_prices(self, symbols):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        await asyncio.sleep(0.01)
        self.active -= 1
        return await super().get_prices(symbols)


def test_concurrent_refreshes_run_one_at_a_time(run):
    """Test that overlapping refresh calls do not interleave."""
    oracle = SlowOracle()

    async def main():
        async with httpx.AsyncClient(transport=httpx.MockTransport(chain_handler())) as client:
            aggregator = AssetAggregator(
                FakeCredentials(), FakeWallets([wallet("w", "BTC", BTC_ADDRESS)]), oracle, client=client
            )
            await asyncio.gather(aggregator.refresh(), aggregator.refresh())
            return aggregator

    aggregator = run(main())

    assert oracle.max_active == 1
    assert len(oracle.calls) == 2
    assert aggregator.is_loading is False


def test_snapshot_and_clear(run):
    """Test the snapshot view and clearing state."""
    aggregator = refresh(run, chain_handler(eth_response=httpx.Response(500)), wallets=three_wallets())

    snapshot = aggregator.snapshot()
    assert [s.symbol for s in snapshot.asset_summaries] == ["BTC", "ADA"]
    assert snapshot.total_value_usd == Decimal("75001.25")
    assert snapshot.errors == ["Ledger Cold ETH: HTTP 500"]
    assert snapshot.is_loading is False
    assert json.loads(snapshot.model_dump_json())["errors"] == snapshot.errors

    aggregator.clear()

    cleared = aggregator.snapshot()
    assert cleared.asset_summaries == []
    assert cleared.errors == []
    assert cleared.last_updated is None
    assert aggregator.prices == {}

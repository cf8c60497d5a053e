"""Asset aggregator for orchestrating balance fetching across exchanges and chains."""

import asyncio
import logging
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import httpx

from crypto_oneview.adapters.base import AdapterError, BaseBalanceAdapter, sanitize_error_message
from crypto_oneview.core.models import (
    AssetSummary,
    BalanceRecord,
    ErrorPolicy,
    PortfolioSnapshot,
    PriceQuote,
    SourceBreakdown,
)
from crypto_oneview.core.registry import AdapterRegistry
from crypto_oneview.data import get_dust_threshold, get_exchange_config, get_wallet_sources

logger = logging.getLogger(__name__)

DUST_THRESHOLD_USD = get_dust_threshold()

RATE_LIMIT_HINT = "rate limited, add an API key to lift the limit"


def build_asset_summaries(
    records: Iterable[BalanceRecord],
    prices: Mapping[str, PriceQuote],
    dust_threshold: Decimal = DUST_THRESHOLD_USD,
) -> list[AssetSummary]:
    """
    Group balance records into per-symbol summaries.

    Records are grouped by symbol and merged per (source, account_type).
    Confidently-priced holdings worth less than ``dust_threshold`` are dropped;
    holdings with an unknown (zero) price are always kept. Percentages are
    computed over the retained summaries only.

    Parameters
    ----------
    records : Iterable[BalanceRecord]
        Normalized balance records
    prices : Mapping[str, PriceQuote]
        Resolved prices keyed by symbol
    dust_threshold : Decimal
        USD value under which a priced holding is hidden

    Returns
    -------
    list[AssetSummary]
        Retained summaries sorted by USD value, descending

    """
    summary_map: dict[str, AssetSummary] = {}

    for record in records:
        summary = summary_map.get(record.symbol)
        if summary is None:
            quote = prices.get(record.symbol)
            summary = AssetSummary(
                symbol=record.symbol,
                price_usd=quote.price_usd if quote else Decimal("0"),
            )
            summary_map[record.symbol] = summary

        summary.total_amount += record.amount

        existing = next(
            (s for s in summary.sources if s.source == record.source and s.account_type == record.account_type),
            None,
        )
        if existing:
            existing.amount += record.amount
        else:
            summary.sources.append(
                SourceBreakdown(source=record.source, account_type=record.account_type, amount=record.amount)
            )

    retained = []
    for summary in summary_map.values():
        summary.value_usd = summary.total_amount * summary.price_usd
        if summary.value_usd >= dust_threshold or summary.price_usd == 0:
            retained.append(summary)

    total_value = total_value_usd(retained)
    for summary in retained:
        summary.percentage = summary.value_usd / total_value * 100 if total_value > 0 else Decimal("0")

    return sorted(retained, key=lambda s: s.value_usd, reverse=True)


def total_value_usd(summaries: Iterable[AssetSummary]) -> Decimal:
    """Sum the USD value of summaries."""
    return sum((s.value_usd for s in summaries), Decimal("0"))


@dataclass
class _FetchJob:
    """One adapter invocation planned for a refresh pass."""

    label: str
    category: str
    adapter: BaseBalanceAdapter
    target: Any
    api_key: str | None = None


class AssetAggregator:
    """
    Orchestrates balance fetching across all configured exchanges and wallets.

    Workflow:
    1. Read exchange credentials and wallet addresses from the registries
    2. Fetch every exchange account type and wallet concurrently
    3. Collect per-source errors without aborting the pass
    4. Price the distinct symbols seen in this pass
    5. Expose per-symbol summaries through ``asset_summaries`` and ``snapshot``

    At most one refresh pass runs at a time.

    Parameters
    ----------
    credentials : Any
        Credential registry with ``list()`` and ``get_decrypted(source_id)``
    wallets : Any
        Wallet registry with ``list()`` and ``get_api_key(id)``
    oracle : Any
        Price oracle with ``async get_prices(symbols)``
    client : httpx.AsyncClient | None
        HTTP client shared by all adapters. A private client is created if None.
    dust_threshold : Decimal
        USD value under which a priced holding is hidden

    """

    def __init__(
        self,
        credentials: Any,
        wallets: Any,
        oracle: Any,
        client: httpx.AsyncClient | None = None,
        dust_threshold: Decimal = DUST_THRESHOLD_USD,
    ) -> None:
        self.credentials = credentials
        self.wallets = wallets
        self.oracle = oracle
        if not dust_threshold.is_finite():
            msg = f"Dust threshold must be a finite number, got {dust_threshold}"
            raise ValueError(msg)
        self.dust_threshold = dust_threshold
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=30.0)

        self.records: list[BalanceRecord] = []
        self.prices: dict[str, PriceQuote] = {}
        self.last_updated: int | None = None
        self.errors: list[str] = []
        self.is_loading = False
        self._refresh_lock = asyncio.Lock()

    @property
    def asset_summaries(self) -> list[AssetSummary]:
        """Per-symbol summaries derived from the current records and prices."""
        return build_asset_summaries(self.records, self.prices, self.dust_threshold)

    @property
    def total_value_usd(self) -> Decimal:
        """Total USD value of retained summaries."""
        return total_value_usd(self.asset_summaries)

    def snapshot(self) -> PortfolioSnapshot:
        """
        Build a read-only view of the current state.

        Returns
        -------
        PortfolioSnapshot
            Summaries, total value, errors, and status

        """
        summaries = self.asset_summaries
        return PortfolioSnapshot(
            asset_summaries=summaries,
            total_value_usd=total_value_usd(summaries),
            errors=list(self.errors),
            last_updated=self.last_updated,
            is_loading=self.is_loading,
        )

    async def refresh(self) -> None:
        """
        Fetch all sources and prices, replacing the current state.

        Never raises. Per-source failures are recorded in ``errors``; an
        unexpected failure of the pass itself is recorded as well and leaves
        the previously committed records and prices in place.

        """
        async with self._refresh_lock:
            self.is_loading = True
            errors: list[str] = []
            self.errors = errors

            try:
                records = await self._fetch_all_records(errors)
                prices = await self._fetch_prices(records)

                self.records = records
                self.prices = prices
                self.last_updated = int(time.time() * 1000)
                logger.info(
                    "Refresh complete: %d record(s), %d price(s), %d error(s)",
                    len(records),
                    len(prices),
                    len(errors),
                )
            except Exception as e:
                logger.exception("Refresh pass failed")
                errors.append(f"Refresh failed: {e}")
            finally:
                self.is_loading = False

    def clear(self) -> None:
        """Drop all records, prices, errors, and the last update time."""
        self.records = []
        self.prices = {}
        self.last_updated = None
        self.errors = []

    async def _fetch_all_records(self, errors: list[str]) -> list[BalanceRecord]:
        """
        Run every planned fetch concurrently and merge the successes.

        Parameters
        ----------
        errors : list[str]
            Error list of the current pass, appended to in place

        Returns
        -------
        list[BalanceRecord]
            Records from all successful fetches

        """
        jobs = self._plan_exchange_jobs(errors) + self._plan_wallet_jobs(errors)
        if not jobs:
            return []

        outcomes = await asyncio.gather(
            *(job.adapter.fetch(job.target, job.api_key) for job in jobs),
            return_exceptions=True,
        )

        records: list[BalanceRecord] = []
        for job, outcome in zip(jobs, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                self._record_failure(job, outcome, errors)
                continue
            records.extend(outcome)

        return records

    def _plan_exchange_jobs(self, errors: list[str]) -> list[_FetchJob]:
        jobs = []

        for ref in self.credentials.list():
            credential = self.credentials.get_decrypted(ref.source_id)
            if credential is None:
                logger.debug("Skipping %s: credential unavailable", ref.source_id)
                continue

            exchange_name = self._exchange_name(ref.kind)
            adapter_classes = AdapterRegistry.get_exchange_adapters(ref.kind)
            if not adapter_classes:
                errors.append(f"{exchange_name} exchange: unsupported exchange")
                continue

            for adapter_class in adapter_classes:
                adapter = adapter_class(client=self.client)
                jobs.append(_FetchJob(label=exchange_name, category=adapter.label, adapter=adapter, target=credential))

        return jobs

    def _plan_wallet_jobs(self, errors: list[str]) -> list[_FetchJob]:
        jobs = []
        source_labels = get_wallet_sources()

        for wallet in self.wallets.list():
            label = source_labels.get(wallet.source_label, wallet.source_label)
            adapter_class = AdapterRegistry.get_chain_adapter(wallet.chain)
            if adapter_class is None:
                errors.append(f"{label} {wallet.chain}: unsupported chain")
                continue

            api_key = self.wallets.get_api_key(wallet.id) if wallet.has_api_key else None
            adapter = adapter_class(client=self.client, source=wallet.source_label)
            jobs.append(
                _FetchJob(label=label, category=wallet.chain, adapter=adapter, target=wallet.address, api_key=api_key)
            )

        return jobs

    def _record_failure(self, job: _FetchJob, error: Exception, errors: list[str]) -> None:
        if job.adapter.on_error is ErrorPolicy.SWALLOW:
            logger.debug("%s %s unavailable, ignoring: %s", job.label, job.category, error)
            return

        if isinstance(error, AdapterError):
            if error.rate_limited and job.api_key:
                logger.warning("%s %s rate limited, will retry next refresh", job.label, job.category)
                return
            message = RATE_LIMIT_HINT if error.rate_limited else error.message
        else:
            message = sanitize_error_message(str(error) or type(error).__name__)

        logger.warning("%s %s: %s", job.label, job.category, message)
        errors.append(f"{job.label} {job.category}: {message}")

    async def _fetch_prices(self, records: list[BalanceRecord]) -> dict[str, PriceQuote]:
        symbols = {record.symbol for record in records}
        if not symbols:
            return {}

        prices = await self.oracle.get_prices(symbols)

        for symbol in sorted(symbols - prices.keys()):
            logger.warning("No price found for %s, it will not count toward total value", symbol)

        return prices

    @staticmethod
    def _exchange_name(exchange: str) -> str:
        try:
            return get_exchange_config(exchange)["name"]
        except KeyError:
            return exchange

    async def aclose(self) -> None:
        """Close HTTP client if owned."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "AssetAggregator":
        """Context manager entry."""
        return self

    async def __aexit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        """Context manager exit."""
        await self.aclose()

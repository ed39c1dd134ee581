"""Unit tests for PortfolioService: totals, allocation and the refresh loop."""

from datetime import date, timedelta
from decimal import Decimal

from config import Settings
from models import PortfolioAsset
from schemas import AssetCreate
from services.currency_service import CurrencyConverter
from services.portfolio_service import (
    allocation,
    change_percent,
    create_portfolio_service,
    total_value,
)
from services.types import AssetType, Currency, HistoryEntry
from tests.fixtures import make_holding
from tests.fixtures.mocks import MockRateSource

USD_092 = CurrencyConverter(Decimal("0.92"), Currency.USD)
EUR_092 = CurrencyConverter(Decimal("0.92"), Currency.EUR)


class TestTotalValue:
    def test_sums_visible_holdings_in_usd(self):
        holdings = [
            make_holding(1, amount="2", price="100"),
            make_holding(2, "AAPL", AssetType.STOCK, amount="1", price="50"),
        ]
        assert total_value(holdings, USD_092) == Decimal("250")

    def test_eur_cash_holding(self):
        """10000 EUR of cash is ~10869.57 USD, and shows as 10000.00 in EUR."""
        cash = make_holding(
            1, "SAV", AssetType.BANK, amount="1", price="10000.00", currency=Currency.EUR
        )

        total = total_value([cash], USD_092)

        assert total.quantize(Decimal("0.01")) == Decimal("10869.57")
        assert USD_092.format_value(total) == "$10,869.57"
        assert EUR_092.format_value(total) == "€10,000.00"

    def test_hidden_excluded(self):
        holdings = [make_holding(1, price="100"), make_holding(2, price="900", is_hidden=True)]
        assert total_value(holdings, USD_092) == Decimal("100")

    def test_empty(self):
        assert total_value([], USD_092) == Decimal("0")


class TestAllocation:
    def test_groups_by_type_largest_first(self):
        holdings = [
            make_holding(1, "BTC", price="100"),
            make_holding(2, "AAPL", AssetType.STOCK, price="300"),
            make_holding(3, "ETH", price="100"),
        ]

        buckets = allocation(holdings, USD_092)

        assert [(b.key, b.label, b.value, b.percent) for b in buckets] == [
            ("stock", "Stocks", Decimal("300"), Decimal("60.00")),
            ("crypto", "Crypto", Decimal("200"), Decimal("40.00")),
        ]

    def test_group_by_symbol_with_limit(self):
        holdings = [
            make_holding(1, "BTC", price="500"),
            make_holding(2, "ETH", price="300"),
            make_holding(3, "SOL", price="200"),
        ]

        buckets = allocation(holdings, USD_092, group_by="symbol", limit=2)

        assert [b.key for b in buckets] == ["BTC", "ETH"]
        assert buckets[0].percent == Decimal("50.00")

    def test_ties_keep_insertion_order(self):
        holdings = [make_holding(1, "B", price="10"), make_holding(2, "A", price="10")]
        assert [b.key for b in allocation(holdings, USD_092, group_by="symbol")] == ["B", "A"]

    def test_hidden_excluded_but_still_listed(self, portfolio_service):
        portfolio_service.state.replace(
            [make_holding(1, "BTC", price="100"), make_holding(2, "ETH", price="100", is_hidden=True)]
        )

        buckets = portfolio_service.allocation(group_by="symbol")

        assert [b.key for b in buckets] == ["BTC"]
        assert buckets[0].percent == Decimal("100.00")
        assert [h.id for h in portfolio_service.assets.list_assets()] == [1, 2]

    def test_zero_total_gives_zero_percent(self):
        buckets = allocation([make_holding(1, price="0")], USD_092)
        assert buckets[0].percent == Decimal("0")


class TestRefreshPrices:
    def test_refresh_swaps_and_persists_prices(self, portfolio_service, crypto_source, db):
        holding = portfolio_service.assets.add_asset(AssetCreate(symbol="BTC", type=AssetType.CRYPTO))
        portfolio_service.state.update(
            lambda current: [h.with_price(Decimal("1"), h.last_fetched.replace(year=2020)) for h in current]
        )
        crypto_source.prices["bitcoin"] = Decimal("64000")

        result = portfolio_service.refresh_prices()

        assert result.updated_ids == [holding.id]
        assert portfolio_service.state.get(holding.id).price == Decimal("64000")
        assert db.get(PortfolioAsset, holding.id).price == Decimal("64000")
        assert portfolio_service.last_update == result.completed_at

    def test_skipped_when_all_fresh(self, portfolio_service):
        portfolio_service.assets.add_asset(AssetCreate(symbol="BTC", type=AssetType.CRYPTO))
        version = portfolio_service.state.version

        assert portfolio_service.refresh_prices().skipped
        assert portfolio_service.state.version == version


class TestRefreshScheduling:
    def test_adding_a_holding_schedules_a_cycle(self, portfolio_service, crypto_source):
        assert not portfolio_service.refresh_pending

        holding = portfolio_service.assets.add_asset(AssetCreate(symbol="BTC", type=AssetType.CRYPTO))
        portfolio_service.state.update(
            lambda current: [h.with_price(h.price, h.last_fetched.replace(year=2020)) for h in current]
        )
        crypto_source.prices["bitcoin"] = Decimal("64000")
        crypto_source.price_calls.clear()

        assert portfolio_service.refresh_pending
        assert portfolio_service._refresh_task.flush()

        assert crypto_source.price_calls == [["bitcoin"]]
        assert portfolio_service.state.get(holding.id).price == Decimal("64000")
        assert not portfolio_service.refresh_pending

    def test_edit_without_count_change_does_not_schedule(self, portfolio_service):
        holding = portfolio_service.assets.add_asset(AssetCreate(symbol="BTC", type=AssetType.CRYPTO))
        portfolio_service._refresh_task.flush()

        portfolio_service.assets.update_amount(holding.id, "3")
        portfolio_service.assets.toggle_hidden(holding.id)

        assert not portfolio_service.refresh_pending

    def test_delete_schedules_a_cycle(self, portfolio_service):
        holding = portfolio_service.assets.add_asset(AssetCreate(symbol="BTC", type=AssetType.CRYPTO))
        portfolio_service._refresh_task.flush()

        portfolio_service.assets.delete_asset(holding.id)

        assert portfolio_service.refresh_pending


class TestSnapshots:
    def test_total_change_schedules_snapshot(self, portfolio_service):
        portfolio_service.assets.add_asset(
            AssetCreate(symbol="SAV", type=AssetType.BANK, manual_price="1000")
        )

        assert portfolio_service.history.sync_pending
        portfolio_service.history.flush()

        [entry] = portfolio_service.history.history
        assert entry.date == date.today()
        assert entry.value == Decimal("1000.00")

    def test_unchanged_total_does_not_reschedule(self, portfolio_service):
        holding = portfolio_service.assets.add_asset(
            AssetCreate(symbol="SAV", type=AssetType.BANK, manual_price="1000")
        )
        portfolio_service.history.flush()

        portfolio_service.assets.update_name(holding.id, "Savings")

        assert not portfolio_service.history.sync_pending

    def test_rate_change_on_eur_holding_schedules_snapshot(self, portfolio_service, rate_source):
        portfolio_service.assets.add_asset(
            AssetCreate(
                symbol="SAV", type=AssetType.BANK, manual_price="1000", price_currency=Currency.EUR
            )
        )
        portfolio_service.history.flush()

        rate_source.rate = Decimal("0.80")
        portfolio_service.currency.refresh_rate(force=True)

        assert portfolio_service.history.sync_pending


class TestSummaryAndLoad:
    def test_summary_in_display_currency(self, portfolio_service, storage):
        portfolio_service.state.replace(
            [make_holding(1, "SAV", AssetType.BANK, price="1000"), make_holding(2, price="5", is_hidden=True)]
        )
        portfolio_service.currency.set_currency(Currency.EUR)

        summary = portfolio_service.summary()

        rate = portfolio_service.currency.rate
        assert summary.total_value == Decimal("1000")
        assert summary.display_total == Decimal("1000") * rate
        assert summary.formatted_total.startswith("€")
        assert (summary.holdings_count, summary.visible_count) == (2, 1)

    def test_load_reads_remote_store(self, portfolio_service, session_factory, db):
        db.add(PortfolioAsset(symbol="AAPL", name="Apple", type="stock", amount=Decimal("2"), price=Decimal("100")))
        db.commit()

        portfolio_service.load()

        [holding] = portfolio_service.state.holdings
        assert holding.symbol == "AAPL"
        assert portfolio_service.total_value() == Decimal("200")
        assert portfolio_service.currency.rate == Decimal("0.90")


class TestCreatePortfolioService:
    def test_demo_mode_wires_without_remote_store(self, storage):
        settings = Settings(_env_file=None, DEMO_MODE=True)
        service = create_portfolio_service(settings, storage, session_factory=object())
        service.currency._rate_source = MockRateSource()
        try:
            service.load()

            assert len(service.state.holdings) == 6
            assert len(service.history.history) == 365
            assert not service.assets.remote_enabled
            assert not service.history.migrate(service.total_value()).success
        finally:
            service.close()


def _history(values, end=date(2024, 6, 15)):
    start = end - timedelta(days=len(values) - 1)
    return [
        HistoryEntry(date=start + timedelta(days=i), value=Decimal(v)) for i, v in enumerate(values)
    ]


class TestChangePercent:
    def test_baseline_is_thirty_entries_back(self):
        history = _history(["50"] * 10 + ["80"] + ["90"] * 29)

        assert change_percent(Decimal("100"), history) == Decimal("25.00")

    def test_short_history_uses_oldest_entry(self):
        history = _history(["800", "900", "950"])

        assert change_percent(Decimal("1000"), history) == Decimal("25.00")

    def test_no_history_is_flat(self):
        assert change_percent(Decimal("1000"), []) == Decimal("0.00")

    def test_zero_baseline_is_flat(self):
        history = _history(["0", "500"])

        assert change_percent(Decimal("1000"), history) == Decimal("0.00")

    def test_decline_rounds_to_two_places(self):
        history = _history(["300"])

        assert change_percent(Decimal("200"), history) == Decimal("-33.33")

    def test_summary_reports_trend(self, portfolio_service):
        portfolio_service.history.record_snapshot(Decimal("800"), today=date(2024, 6, 1))
        portfolio_service.state.replace([make_holding(1, "SAV", AssetType.BANK, amount="1000", price="1")])

        assert portfolio_service.summary().change_percent == Decimal("25.00")

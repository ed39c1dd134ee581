"""Integration tests for portfolio summary, allocation and history endpoints."""

from datetime import date
from decimal import Decimal

from services.types import HistoryEntry


def _seed(client):
    client.post("/api/assets", json={"symbol": "BTC", "type": "crypto", "amount": "0.1"})
    client.post("/api/assets", json={"symbol": "AAPL", "type": "stock", "amount": "10"})
    client.post(
        "/api/assets",
        json={"symbol": "SAV", "type": "bank", "manual_price": "2000", "price_currency": "USD"},
    )


class TestSummary:
    """Tests for GET /api/portfolio."""

    def test_empty_portfolio(self, client):
        data = client.get("/api/portfolio").json()
        assert Decimal(data["total_value"]) == Decimal("0")
        assert data["formatted_total"] == "$0.00"
        assert data["holdings_count"] == 0
        assert Decimal(data["change_percent"]) == Decimal("0")

    def test_totals(self, client):
        _seed(client)

        data = client.get("/api/portfolio").json()

        # 0.1 * 50000 + 10 * 190.50 + 2000
        assert Decimal(data["total_value"]) == Decimal("8905")
        assert data["formatted_total"] == "$8,905.00"
        assert data["currency"] == "USD"
        assert data["demo_mode"] is False

    def test_hidden_excluded(self, client):
        _seed(client)
        btc = client.get("/api/assets").json()[0]
        client.post(f"/api/assets/{btc['id']}/toggle-hidden")

        data = client.get("/api/portfolio").json()

        assert Decimal(data["total_value"]) == Decimal("3905")
        assert (data["holdings_count"], data["visible_count"]) == (3, 2)


class TestAllocation:
    """Tests for GET /api/portfolio/allocation."""

    def test_by_type(self, client):
        _seed(client)

        data = client.get("/api/portfolio/allocation").json()

        assert data["group_by"] == "type"
        assert [i["key"] for i in data["items"]] == ["crypto", "bank", "stock"]
        assert sum(Decimal(i["percent"]) for i in data["items"]) == Decimal("100.00")

    def test_by_symbol_top_n(self, client):
        _seed(client)

        data = client.get("/api/portfolio/allocation", params={"group_by": "symbol", "limit": 1}).json()

        assert [i["key"] for i in data["items"]] == ["BTC"]

    def test_invalid_group(self, client):
        assert client.get("/api/portfolio/allocation", params={"group_by": "color"}).status_code == 422


class TestHistory:
    """Tests for the history endpoints."""

    def test_history_in_display_currency(self, client, portfolio_service):
        portfolio_service.history.record_snapshot(Decimal("1000"), today=date(2024, 6, 1))
        client.put("/api/currency", json={"currency": "EUR"})

        data = client.get("/api/portfolio/history").json()

        assert data["currency"] == "EUR"
        [entry] = data["entries"]
        assert entry["date"] == "2024-06-01"
        assert Decimal(entry["display_value"]) == Decimal("1000") * portfolio_service.currency.rate

    def test_migrate(self, client, portfolio_service, storage):
        portfolio_service.history._write_local([HistoryEntry(date(2024, 6, 1), Decimal("900"))])
        _seed(client)

        response = client.post("/api/portfolio/history/migrate")

        assert response.status_code == 200
        assert response.json()["count"] == 2

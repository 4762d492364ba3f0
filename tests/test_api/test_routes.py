"""Tests for the REST API: routing, error mapping and event persistence.

The marketplace runtime and the event repository are replaced through
FastAPI dependency overrides, so no database is needed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from fastapi.testclient import TestClient

from title_exchange.api.deps import MarketRuntime, get_event_repo, get_runtime
from title_exchange.api.middleware import status_for
from title_exchange.domain.exceptions import (
    InsufficientFundsError,
    ListingNotFoundError,
    MarketplaceError,
    OperationHaltedError,
    SelfDealingError,
)
from title_exchange.infrastructure.database.repositories import _to_record
from title_exchange.main import create_app

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from conftest import FakeClock

    from title_exchange.domain.models import MarketEvent
    from title_exchange.infrastructure.database.orm_models import MarketEventRecord
    from title_exchange.services import (
        InMemoryPaymentRail,
        InMemoryTitleRegistry,
        Marketplace,
        StaticAccessPolicy,
    )


class FakeEventRepository:
    """Keeps persisted events in a list instead of a table."""

    def __init__(self) -> None:
        self.records: list[MarketEventRecord] = []

    async def record_many(self, events: Iterable[MarketEvent]) -> list[MarketEventRecord]:
        new = [_to_record(e) for e in events]
        self.records.extend(new)
        return new

    async def get_by_title(self, title_id: str) -> list[MarketEventRecord]:
        return [r for r in self.records if r.title_id == title_id]

    async def get_all(self, limit: int | None = None) -> list[MarketEventRecord]:
        return self.records[:limit]


@pytest.fixture
def repo() -> FakeEventRepository:
    return FakeEventRepository()


@pytest.fixture
def client(
    market: Marketplace,
    policy: StaticAccessPolicy,
    registry: InMemoryTitleRegistry,
    rail: InMemoryPaymentRail,
    repo: FakeEventRepository,
) -> Iterator[TestClient]:
    app = create_app()
    runtime = MarketRuntime(marketplace=market, policy=policy, registry=registry, rail=rail)
    app.dependency_overrides[get_runtime] = lambda: runtime
    app.dependency_overrides[get_event_repo] = lambda: repo
    # No context manager: the lifespan (and its database) is not started
    yield TestClient(app)
    app.dependency_overrides.clear()


def _list(client: TestClient, title_id: str = "T-1", **extra: object) -> dict:
    body = {"caller": "alice", "ask_price": 100, **extra}
    response = client.post(f"/api/v1/titles/{title_id}/listing", json=body)
    assert response.status_code == 201, response.text
    return response.json()


class TestListings:
    def test_list_and_get(self, client: TestClient) -> None:
        data = _list(client)
        assert data["status"] == "LISTED"
        assert data["min_next_bid"] == 100
        assert "purchase" in data["allowed_events"]

        response = client.get("/api/v1/titles")
        assert [t["title_id"] for t in response.json()] == ["T-1"]

    def test_listing_events_are_persisted(
        self, client: TestClient, repo: FakeEventRepository
    ) -> None:
        _list(client)
        assert [r.event_type for r in repo.records] == ["LISTING_CREATED"]

    def test_unknown_listing_is_404(self, client: TestClient) -> None:
        response = client.get("/api/v1/titles/T-404")
        assert response.status_code == 404
        assert response.json()["error"] == "LISTING_NOT_FOUND"

    def test_non_holder_is_403(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/titles/T-1/listing", json={"caller": "bob", "ask_price": 100}
        )
        assert response.status_code == 403

    def test_relisting_active_listing_is_409(self, client: TestClient) -> None:
        _list(client)
        response = client.post(
            "/api/v1/titles/T-1/listing", json={"caller": "alice", "ask_price": 100}
        )
        assert response.status_code == 409

    def test_request_validation(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/titles/T-1/listing", json={"caller": "alice", "ask_price": 0}
        )
        assert response.status_code == 422

    def test_update_and_delist(self, client: TestClient) -> None:
        _list(client)
        response = client.patch(
            "/api/v1/titles/T-1/listing", json={"caller": "alice", "ask_price": 300}
        )
        assert response.json()["ask_price"] == 300

        response = client.post("/api/v1/titles/T-1/delist", json={"caller": "alice"})
        assert response.json()["status"] == "DELISTED"
        assert response.json()["min_next_bid"] is None


class TestBidsAndPurchase:
    def test_bid_then_purchase(self, client: TestClient) -> None:
        _list(client)
        response = client.post(
            "/api/v1/titles/T-1/bids",
            json={"caller": "bob", "amount": 110, "attached": 110},
        )
        assert response.status_code == 201
        assert response.json()["held"] == 110

        response = client.post(
            "/api/v1/titles/T-1/purchase",
            json={"caller": "carol", "offer": 125, "attached": 125},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["outcome"] == "sold"
        assert body["receipt"]["buyer"] == "carol"
        assert body["receipt"]["fee"] == 3

        bids = client.get("/api/v1/titles/T-1/bids", params={"include_inactive": True})
        assert [b["is_active"] for b in bids.json()] == [False]

    def test_low_bid_is_422(self, client: TestClient) -> None:
        _list(client)
        response = client.post(
            "/api/v1/titles/T-1/bids",
            json={"caller": "bob", "amount": 50, "attached": 50},
        )
        assert response.status_code == 422
        assert response.json()["error"] == "BID_BELOW_MINIMUM"

    def test_accept_and_complete(self, client: TestClient) -> None:
        _list(client)
        client.post(
            "/api/v1/titles/T-1/bids", json={"caller": "bob", "amount": 150, "attached": 150}
        )
        response = client.post(
            "/api/v1/titles/T-1/accept-bid",
            json={
                "caller": "alice",
                "bid_index": 0,
                "expected_bidder": "bob",
                "expected_amount": 150,
            },
        )
        assert response.json()["outcome"] == "pending"
        assert response.json()["pending"]["kind"] == "PAYMENT"

        pending = client.get("/api/v1/titles/T-1/pending")
        assert pending.json()["counterparty"] == "bob"

        response = client.post(
            "/api/v1/titles/T-1/complete-payment", json={"caller": "bob", "attached": 0}
        )
        assert response.json()["outcome"] == "sold"

    def test_confirmation_flow(self, client: TestClient) -> None:
        _list(client, confirmation_window_seconds=3600)
        response = client.post(
            "/api/v1/titles/T-1/purchase",
            json={"caller": "bob", "offer": 100, "attached": 100},
        )
        assert response.json()["outcome"] == "pending"

        response = client.post("/api/v1/titles/T-1/reject", json={"caller": "alice"})
        assert response.status_code == 200
        assert client.get("/api/v1/titles/T-1").json()["status"] == "LISTED"

    def test_pending_reports_expiry(self, client: TestClient, clock: FakeClock) -> None:
        _list(client, confirmation_window_seconds=3600)
        client.post(
            "/api/v1/titles/T-1/purchase",
            json={"caller": "bob", "offer": 100, "attached": 100},
        )
        assert client.get("/api/v1/titles/T-1/pending").json()["is_expired"] is False

        clock.advance(3600)
        assert client.get("/api/v1/titles/T-1/pending").json()["is_expired"] is True

        response = client.post("/api/v1/titles/T-1/expire", json={"caller": "carol"})
        assert response.status_code == 200
        assert response.json()["is_expired"] is True


class TestEscrowAndEvents:
    def test_escrow_balance_and_withdraw(
        self, client: TestClient, rail: InMemoryPaymentRail
    ) -> None:
        _list(client)
        client.post(
            "/api/v1/titles/T-1/bids", json={"caller": "bob", "amount": 100, "attached": 100}
        )
        rail.register_receive_hook("bob", _refuse)
        client.post("/api/v1/titles/T-1/bids/cancel", json={"caller": "bob"})

        balance = client.get("/api/v1/escrow/bob/NATIVE")
        assert balance.json()["amount"] == 100

        response = client.post("/api/v1/escrow/withdraw", json={"caller": "bob"})
        assert response.status_code == 402

        rail.clear_receive_hook("bob")
        response = client.post("/api/v1/escrow/withdraw", json={"caller": "bob"})
        assert response.json()["amount"] == 100

    def test_title_events(self, client: TestClient) -> None:
        _list(client)
        response = client.get("/api/v1/titles/T-1/events")
        assert response.json()[0]["event_type"] == "LISTING_CREATED"

    def test_history_reads_repository(self, client: TestClient) -> None:
        _list(client)
        response = client.get("/api/v1/events/history", params={"title_id": "T-1"})
        body = response.json()
        assert len(body) == 1
        assert body[0]["amount"] == 100


class TestAdminAndSandbox:
    def test_sandbox_mint_and_fund(self, client: TestClient) -> None:
        response = client.post("/api/v1/sandbox/titles", json={"title_id": "T-9", "owner": "zed"})
        assert response.status_code == 201
        response = client.post(
            "/api/v1/sandbox/funds", json={"account": "zed", "amount": 500}
        )
        assert response.json()["amount"] == 500
        _list(client, "T-9", caller="zed")

    def test_custody_report(self, client: TestClient) -> None:
        _list(client)
        client.post(
            "/api/v1/titles/T-1/bids", json={"caller": "bob", "amount": 100, "attached": 100}
        )
        report = client.get("/api/v1/admin/custody/NATIVE").json()
        assert report["committed"] == 100
        assert report["violations"] == []

    def test_admin_route_requires_admin(self, client: TestClient) -> None:
        _list(client)
        response = client.post("/api/v1/admin/titles/T-1/rent", json={"caller": "alice"})
        assert response.status_code == 403

        response = client.post("/api/v1/admin/titles/T-1/rent", json={"caller": "admin"})
        assert response.json()["status"] == "RENTED"

    def test_set_deflationary(self, client: TestClient, market: Marketplace) -> None:
        response = client.put(
            "/api/v1/admin/assets/USDX/deflationary",
            json={"caller": "admin", "deflationary": True},
        )
        assert response.status_code == 204
        assert market.assets.is_deflationary("USDX")


class TestStatusMapping:
    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (SelfDealingError("T-1"), 403),
            (ListingNotFoundError("T-1"), 404),
            (OperationHaltedError("purchase"), 409),
            (InsufficientFundsError("bob", required=2, available=1), 402),
            (MarketplaceError("boom"), 400),
        ],
    )
    def test_status_for(self, error: MarketplaceError, expected: int) -> None:
        assert status_for(error) == expected


def _refuse(asset_id: str, sender: str, received: int) -> None:
    raise RuntimeError("refused")

"""
Integration tests for proposal API endpoints.

WHAT: Tests for proposal CRUD, line item editing, pricing preview and the
send/accept/reject lifecycle over HTTP.

WHY: Verifies that:
1. Every response carries recomputed item breakdowns and totals
2. Totals follow item edits immediately
3. Invalid numbers are coerced rather than rejected
4. Lifecycle gates return 422 with readable reasons
5. Non-draft proposals reject edits
6. Item discounts in the other discount mode are rejected with 400

HOW: Uses httpx AsyncClient against the app with the database dependency
overridden to an in-memory SQLite session. Amounts are serialized as
strings, so they are compared as Decimals.
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from httpx import AsyncClient

from tests.factories import ApprovalWorkflowFactory, ProposalFactory, line_item_payload, money


BASE = "/api/proposals"


async def _create(client: AsyncClient, **payload) -> dict:
    payload.setdefault("title", "Managed Security")
    response = await client.post(BASE, json=payload)
    assert response.status_code == 201, response.text
    return response.json()


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "X-Request-ID" in response.headers

    @pytest.mark.asyncio
    async def test_error_body_carries_request_id(self, client: AsyncClient):
        response = await client.get(f"{BASE}/4242", headers={"X-Request-ID": "trace-7"})

        assert response.status_code == 404
        assert response.json()["error"] == "ProposalNotFoundError"
        assert response.json()["request_id"] == "trace-7"
        assert response.headers["X-Request-ID"] == "trace-7"


class TestCreateProposal:
    """Tests for POST /api/proposals."""

    @pytest.mark.asyncio
    async def test_create_with_item(self, client: AsyncClient, firewall_item_data: dict):
        data = await _create(client, items=[firewall_item_data])

        assert data["status"] == "draft"
        assert data["currency"] == "USD"
        assert data["discount_mode"] == "percentage"
        assert data["is_editable"] is True
        assert data["approval_status"] is None

        item = data["items"][0]
        assert item["order"] == 1
        assert item["item_type"] == "subscription"
        assert money(item["subtotal"]) == Decimal("300")
        assert money(item["discount"]) == Decimal("30")
        assert money(item["tax"]) == Decimal("13.50")
        assert money(item["total_price"]) == Decimal("283.50")

        totals = data["totals"]
        assert money(totals["grand_total"]) == Decimal("283.50")
        assert money(totals["recurring_revenue"]) == Decimal("283.50")
        assert totals["item_count"] == 1

    @pytest.mark.asyncio
    async def test_create_amount_mode(self, client: AsyncClient):
        data = await _create(
            client,
            discount_mode="amount",
            items=[line_item_payload(quantity=2, unit_price=50, discount_value=15)],
        )

        assert data["items"][0]["discount_mode"] == "amount"
        assert money(data["items"][0]["total_price"]) == Decimal("85")

    @pytest.mark.asyncio
    async def test_create_coerces_invalid_numbers(self, client: AsyncClient):
        data = await _create(
            client,
            items=[line_item_payload(quantity="abc", unit_price="-20", tax_percent="")],
        )

        item = data["items"][0]
        assert money(item["quantity"]) == Decimal("0")
        assert money(item["unit_price"]) == Decimal("0")
        assert money(item["total_price"]) == Decimal("0")

    @pytest.mark.asyncio
    async def test_create_requires_title(self, client: AsyncClient):
        response = await client.post(BASE, json={"items": []})

        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"

    @pytest.mark.asyncio
    async def test_create_rejects_bad_currency(self, client: AsyncClient):
        response = await client.post(BASE, json={"title": "x", "currency": "dollars"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_create_rejects_item_in_other_discount_mode(self, client: AsyncClient):
        response = await client.post(
            BASE,
            json={
                "title": "Mixed",
                "discount_mode": "percentage",
                "items": [line_item_payload(discount_mode="amount", discount_value=15)],
            },
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "ValidationError"
        assert body["details"]["proposal_discount_mode"] == "percentage"
        assert (await client.get(BASE)).json()["total"] == 0

    @pytest.mark.asyncio
    async def test_preview_rejects_item_in_other_discount_mode(self, client: AsyncClient):
        response = await client.post(
            f"{BASE}/preview",
            json={"discount_mode": "amount", "items": [line_item_payload(discount_mode="percentage")]},
        )

        assert response.status_code == 400


class TestGetAndList:
    """Tests for reading proposals."""

    @pytest.mark.asyncio
    async def test_get_proposal(self, client: AsyncClient, db_session):
        proposal = await ProposalFactory.create(db_session, title="Factory Proposal")

        response = await client.get(f"{BASE}/{proposal.id}")

        assert response.status_code == 200
        data = response.json()
        assert data["title"] == "Factory Proposal"
        assert money(data["totals"]["grand_total"]) == Decimal("283.50")

    @pytest.mark.asyncio
    async def test_get_missing_proposal(self, client: AsyncClient):
        response = await client.get(f"{BASE}/9999")

        assert response.status_code == 404
        assert response.json()["error"] == "ProposalNotFoundError"

    @pytest.mark.asyncio
    async def test_list_with_status_filter(self, client: AsyncClient, db_session):
        await ProposalFactory.create(db_session, title="Draft")
        await ProposalFactory.create_sent(db_session, title="Sent")

        response = await client.get(BASE, params={"status": "sent"})

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["title"] == "Sent"
        assert money(data["items"][0]["grand_total"]) == Decimal("283.50")

    @pytest.mark.asyncio
    async def test_list_pagination(self, client: AsyncClient, db_session):
        for i in range(3):
            await ProposalFactory.create(db_session, title=f"P{i}")

        data = (await client.get(BASE, params={"skip": 1, "limit": 1})).json()

        assert data["total"] == 3
        assert len(data["items"]) == 1
        assert data["skip"] == 1
        assert data["limit"] == 1


class TestPreview:
    @pytest.mark.asyncio
    async def test_preview_prices_without_saving(self, client: AsyncClient, firewall_item_data: dict):
        response = await client.post(
            f"{BASE}/preview",
            json={"items": [firewall_item_data, line_item_payload(name="")]},
        )

        assert response.status_code == 200
        data = response.json()
        assert [i["order"] for i in data["items"]] == [1, 2]
        assert money(data["totals"]["grand_total"]) == Decimal("383.50")
        assert data["can_send"] is False
        assert data["send_blockers"] == ["Line item 2 has no name"]

        listing = (await client.get(BASE)).json()
        assert listing["total"] == 0

    @pytest.mark.asyncio
    async def test_preview_empty(self, client: AsyncClient):
        data = (await client.post(f"{BASE}/preview", json={})).json()

        assert money(data["totals"]["grand_total"]) == Decimal("0")
        assert data["can_send"] is False


class TestItemEditing:
    """Tests for item add/edit/remove endpoints."""

    @pytest.mark.asyncio
    async def test_add_blank_item(self, client: AsyncClient, firewall_item_data: dict):
        created = await _create(client, items=[firewall_item_data])

        response = await client.post(f"{BASE}/{created['id']}/items", json={})

        assert response.status_code == 201
        items = response.json()["items"]
        assert len(items) == 2
        assert items[1]["order"] == 2
        assert items[1]["name"] == ""
        assert money(items[1]["quantity"]) == Decimal("1")

    @pytest.mark.asyncio
    async def test_add_catalog_item(self, client: AsyncClient):
        created = await _create(client)

        response = await client.post(
            f"{BASE}/{created['id']}/items",
            json={
                "catalog_item": {
                    "id": "cat-9",
                    "name": "Microsoft 365 Business",
                    "unit_price": "22.00",
                    "item_type": "subscription",
                    "margin_percent": 15,
                }
            },
        )

        assert response.status_code == 201
        item = response.json()["items"][0]
        assert item["catalog_item_id"] == "cat-9"
        assert item["billing_cycle"] == "monthly"
        assert money(item["renewal_price"]) == Decimal("22.00")
        assert money(item["total_price"]) == Decimal("22.00")

    @pytest.mark.asyncio
    async def test_add_item_with_fields(self, client: AsyncClient):
        created = await _create(client)

        response = await client.post(
            f"{BASE}/{created['id']}/items",
            json=line_item_payload(name="Labor", quantity=8, unit_price=95),
        )

        data = response.json()
        assert money(data["totals"]["grand_total"]) == Decimal("760.00")

    @pytest.mark.asyncio
    async def test_edit_item_recomputes_totals(self, client: AsyncClient, firewall_item_data: dict):
        created = await _create(client, items=[firewall_item_data])

        response = await client.patch(
            f"{BASE}/{created['id']}/items/1", json={"quantity": 4}
        )

        assert response.status_code == 200
        data = response.json()
        assert money(data["items"][0]["total_price"]) == Decimal("378.00")
        assert money(data["totals"]["grand_total"]) == Decimal("378.00")

        totals = (await client.get(f"{BASE}/{created['id']}/totals")).json()
        assert money(totals["grand_total"]) == Decimal("378.00")

    @pytest.mark.asyncio
    async def test_edit_discount_value_only(self, client: AsyncClient, firewall_item_data: dict):
        created = await _create(client, items=[firewall_item_data])

        data = (
            await client.patch(f"{BASE}/{created['id']}/items/1", json={"discount_value": 20})
        ).json()

        assert money(data["items"][0]["discount"]) == Decimal("60")
        assert money(data["totals"]["grand_total"]) == Decimal("252.00")

    @pytest.mark.asyncio
    async def test_percent_over_hundred_is_clamped(self, client: AsyncClient, firewall_item_data: dict):
        created = await _create(client, items=[firewall_item_data])

        data = (
            await client.patch(f"{BASE}/{created['id']}/items/1", json={"discount_value": 150})
        ).json()

        assert money(data["items"][0]["discount_value"]) == Decimal("100")
        assert money(data["totals"]["grand_total"]) == Decimal("0")

    @pytest.mark.asyncio
    async def test_edit_rejects_total_price(self, client: AsyncClient, firewall_item_data: dict):
        created = await _create(client, items=[firewall_item_data])

        response = await client.patch(
            f"{BASE}/{created['id']}/items/1", json={"total_price": 1}
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_edit_rejects_other_discount_mode(self, client: AsyncClient, firewall_item_data: dict):
        created = await _create(client, items=[firewall_item_data])

        response = await client.patch(
            f"{BASE}/{created['id']}/items/1",
            json={"discount_mode": "amount", "discount_value": 40},
        )

        assert response.status_code == 400
        totals = (await client.get(f"{BASE}/{created['id']}/totals")).json()
        assert money(totals["grand_total"]) == Decimal("283.50")

    @pytest.mark.asyncio
    async def test_item_totals_add_up_in_amount_mode(self, client: AsyncClient, firewall_item_data: dict):
        created = await _create(client, discount_mode="amount", items=[firewall_item_data])
        url = f"{BASE}/{created['id']}/items"

        await client.post(url, json=line_item_payload(name="Labor", quantity=2, unit_price=50, discount_value=15))
        data = (
            await client.patch(f"{url}/1", json={"discount_mode": "amount", "discount_value": 30})
        ).json()

        item_totals = [money(item["total_price"]) for item in data["items"]]
        assert item_totals == [Decimal("283.50"), Decimal("85.00")]
        assert money(data["totals"]["grand_total"]) == sum(item_totals)

    @pytest.mark.asyncio
    async def test_edit_missing_item(self, client: AsyncClient):
        created = await _create(client)

        response = await client.patch(f"{BASE}/{created['id']}/items/3", json={"name": "x"})

        assert response.status_code == 404
        assert response.json()["error"] == "ProposalItemNotFoundError"

    @pytest.mark.asyncio
    async def test_remove_item_renumbers(self, client: AsyncClient):
        created = await _create(
            client,
            items=[line_item_payload(name=f"Row {i}") for i in range(1, 5)],
        )

        response = await client.delete(f"{BASE}/{created['id']}/items/2")

        assert response.status_code == 200
        items = response.json()["items"]
        assert [i["order"] for i in items] == [1, 2, 3]
        assert [i["name"] for i in items] == ["Row 1", "Row 3", "Row 4"]
        assert money(response.json()["totals"]["grand_total"]) == Decimal("300.00")

    @pytest.mark.asyncio
    async def test_switch_discount_mode(self, client: AsyncClient, firewall_item_data: dict):
        created = await _create(client, items=[firewall_item_data])

        response = await client.patch(
            f"{BASE}/{created['id']}", json={"discount_mode": "amount"}
        )

        data = response.json()
        assert data["discount_mode"] == "amount"
        assert data["items"][0]["discount_mode"] == "amount"
        assert money(data["items"][0]["discount_value"]) == Decimal("0")
        assert money(data["totals"]["grand_total"]) == Decimal("315.00")

    @pytest.mark.asyncio
    async def test_sent_proposal_rejects_edits(self, client: AsyncClient, db_session):
        proposal = await ProposalFactory.create_sent(db_session)

        response = await client.patch(f"{BASE}/{proposal.id}/items/1", json={"quantity": 9})

        assert response.status_code == 422
        assert response.json()["error"] == "ProposalNotEditableError"


class TestLifecycle:
    """Tests for readiness, send, accept and reject."""

    @pytest.mark.asyncio
    async def test_readiness(self, client: AsyncClient):
        created = await _create(client)

        data = (await client.get(f"{BASE}/{created['id']}/readiness")).json()

        assert data["can_send"] is False
        assert data["send_blockers"] == ["Proposal has no line items"]
        assert data["can_mark_accepted"] is False
        assert "At least one proposal item is required" in data["validation"]["errors"]

    @pytest.mark.asyncio
    async def test_send_empty_proposal_is_blocked(self, client: AsyncClient):
        created = await _create(client)

        response = await client.post(f"{BASE}/{created['id']}/send")

        assert response.status_code == 422
        data = response.json()
        assert data["error"] == "ProposalGateError"
        assert data["details"]["reasons"] == ["Proposal has no line items"]

    @pytest.mark.asyncio
    async def test_send_then_accept(self, client: AsyncClient, firewall_item_data: dict):
        created = await _create(client, items=[firewall_item_data])

        sent = await client.post(f"{BASE}/{created['id']}/send")
        assert sent.status_code == 200
        assert sent.json()["status"] == "sent"
        assert sent.json()["is_editable"] is False

        accepted = await client.post(f"{BASE}/{created['id']}/accept")

        assert accepted.status_code == 200
        assert accepted.json()["status"] == "accepted"
        assert accepted.json()["accepted_at"] is not None

    @pytest.mark.asyncio
    async def test_accept_draft_is_invalid(self, client: AsyncClient, firewall_item_data: dict):
        created = await _create(client, items=[firewall_item_data])

        response = await client.post(f"{BASE}/{created['id']}/accept")

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidStateTransitionError"

    @pytest.mark.asyncio
    async def test_accept_blocked_by_workflow(self, client: AsyncClient, db_session):
        proposal = await ProposalFactory.create_sent(db_session)
        await ApprovalWorkflowFactory.create(db_session, proposal)

        response = await client.post(f"{BASE}/{proposal.id}/accept")

        assert response.status_code == 422
        assert response.json()["details"]["reasons"] == ["Approval workflow is pending"]

    @pytest.mark.asyncio
    async def test_accept_expired(self, client: AsyncClient, db_session):
        proposal = await ProposalFactory.create_sent(
            db_session, valid_until=datetime.utcnow() - timedelta(days=2)
        )

        response = await client.post(f"{BASE}/{proposal.id}/accept")

        assert response.status_code == 422
        assert "Proposal has expired" in response.json()["details"]["reasons"]

    @pytest.mark.asyncio
    async def test_reject_with_reason(self, client: AsyncClient, db_session):
        proposal = await ProposalFactory.create_sent(db_session)

        response = await client.post(
            f"{BASE}/{proposal.id}/reject", json={"reason": "Went with another vendor"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "rejected"
        assert data["rejection_reason"] == "Went with another vendor"

    @pytest.mark.asyncio
    async def test_reject_without_body(self, client: AsyncClient, db_session):
        proposal = await ProposalFactory.create_sent(db_session)

        response = await client.post(f"{BASE}/{proposal.id}/reject")

        assert response.status_code == 200
        assert response.json()["rejection_reason"] is None

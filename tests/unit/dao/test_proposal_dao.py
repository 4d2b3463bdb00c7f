"""
Unit tests for Proposal DAO.

WHAT: Tests for ProposalDAO database operations.

WHY: Verifies that:
1. Proposal CRUD operations work correctly
2. Items load in display order together with the approval workflow
3. Pricing columns round-trip as Decimals
4. Query methods filter and paginate correctly

HOW: Uses pytest-asyncio with in-memory SQLite database for isolation.
"""

import pytest
from decimal import Decimal

from sqlalchemy import select

from msp_proposals.dao.proposal import ProposalDAO
from msp_proposals.domain.line_items import BillingCycle, Discount, DiscountMode, LineItemKind
from msp_proposals.models.proposal import ProposalItem, ProposalStatus
from tests.factories import ApprovalWorkflowFactory, LineItemFactory, ProposalFactory


class TestProposalDAOCreate:
    """Tests for proposal creation."""

    @pytest.mark.asyncio
    async def test_create_proposal_defaults(self, db_session):
        """Test creating a bare proposal applies column defaults."""
        proposal_dao = ProposalDAO(db_session)

        proposal = await proposal_dao.create(title="Bare Proposal")

        assert proposal.id is not None
        assert proposal.status == ProposalStatus.DRAFT
        assert proposal.currency == "USD"
        assert proposal.discount_mode == DiscountMode.PERCENTAGE
        assert proposal.created_at is not None

    @pytest.mark.asyncio
    async def test_factory_persists_items_and_totals(self, db_session):
        proposal = await ProposalFactory.create(db_session, title="Firewall Refresh")

        assert len(proposal.items) == 1
        item = proposal.items[0]
        assert item.item_order == 1
        assert item.item_type == LineItemKind.SUBSCRIPTION
        assert item.total_price == Decimal("283.50")
        assert proposal.subtotal == Decimal("300")
        assert proposal.grand_total == Decimal("283.50")
        assert proposal.recurring_revenue == Decimal("283.50")


class TestProposalDAORetrieval:
    """Tests for proposal lookups."""

    @pytest.mark.asyncio
    async def test_get_with_items_orders_items(self, db_session):
        items = [
            LineItemFactory.build(order=1, name="first"),
            LineItemFactory.build(order=2, name="second"),
            LineItemFactory.build(order=3, name="third"),
        ]
        created = await ProposalFactory.create(db_session, items=items)

        proposal = await ProposalDAO(db_session).get_with_items(created.id)

        assert [row.name for row in proposal.items] == ["first", "second", "third"]
        assert proposal.approval_workflow is None

    @pytest.mark.asyncio
    async def test_get_with_items_loads_workflow_steps(self, db_session):
        created = await ProposalFactory.create(db_session)
        await ApprovalWorkflowFactory.create(db_session, created)

        proposal = await ProposalDAO(db_session).get_with_items(created.id)

        assert proposal.approval_workflow is not None
        assert [s.step_order for s in proposal.approval_workflow.steps] == [1, 2]

    @pytest.mark.asyncio
    async def test_get_with_items_not_found(self, db_session):
        assert await ProposalDAO(db_session).get_with_items(9999) is None

    @pytest.mark.asyncio
    async def test_line_item_round_trip(self, db_session):
        """Stored rows convert back into equal engine items."""
        original = LineItemFactory.build(
            name="Backup",
            kind=LineItemKind.SUBSCRIPTION,
            quantity="2.5",
            unit_price="19.99",
            discount=Discount.amount("4.50"),
            tax_percent="7.25",
            setup_fee=99,
            margin_percent=40,
            sku="BK-1",
            billing_cycle=BillingCycle.ANNUALLY,
            renewal_price="21.00",
        )
        created = await ProposalFactory.create(
            db_session, items=[original], discount_mode=DiscountMode.AMOUNT
        )

        proposal = await ProposalDAO(db_session).get_with_items(created.id)
        restored = proposal.items[0].to_line_item()

        assert restored.quantity == Decimal("2.5")
        assert restored.unit_price == Decimal("19.99")
        assert restored.discount == Discount.amount("4.50")
        assert restored.tax_percent == Decimal("7.25")
        assert restored.setup_fee == Decimal("99")
        assert restored.billing_cycle == BillingCycle.ANNUALLY
        assert restored.renewal_price == Decimal("21.00")
        assert restored.sku == "BK-1"
        assert restored.total_price == original.total_price


class TestProposalDAOQueries:
    """Tests for list and status queries."""

    @pytest.mark.asyncio
    async def test_get_by_status(self, db_session):
        await ProposalFactory.create(db_session, title="Draft A")
        await ProposalFactory.create(db_session, title="Draft B")
        await ProposalFactory.create_sent(db_session, title="Sent")

        drafts = await ProposalDAO(db_session).get_by_status(ProposalStatus.DRAFT)
        sent = await ProposalDAO(db_session).get_by_status(ProposalStatus.SENT)

        assert {p.title for p in drafts} == {"Draft A", "Draft B"}
        assert [p.title for p in sent] == ["Sent"]

    @pytest.mark.asyncio
    async def test_list_proposals_pagination(self, db_session):
        for i in range(5):
            await ProposalFactory.create(db_session, title=f"Proposal {i}")

        proposal_dao = ProposalDAO(db_session)
        page = await proposal_dao.list_proposals(skip=0, limit=2)
        rest = await proposal_dao.list_proposals(skip=2, limit=10)

        assert len(page) == 2
        assert len(rest) == 3
        assert {p.id for p in page}.isdisjoint({p.id for p in rest})

    @pytest.mark.asyncio
    async def test_count_with_filter(self, db_session):
        await ProposalFactory.create(db_session)
        await ProposalFactory.create_sent(db_session)

        proposal_dao = ProposalDAO(db_session)

        assert await proposal_dao.count() == 2
        assert await proposal_dao.count(status=ProposalStatus.SENT) == 1
        assert await proposal_dao.exists(status=ProposalStatus.ACCEPTED) is False


class TestProposalItemRows:
    @pytest.mark.asyncio
    async def test_delete_proposal_cascades_items(self, db_session):
        proposal = await ProposalFactory.create(db_session)
        proposal_id = proposal.id

        await db_session.delete(proposal)
        await db_session.flush()

        assert await ProposalDAO(db_session).get_by_id(proposal_id) is None
        result = await db_session.execute(
            select(ProposalItem).where(ProposalItem.proposal_id == proposal_id)
        )
        assert result.scalars().all() == []

"""
Integration tests for approval workflow API endpoints.

WHAT: Tests for initiating a workflow and deciding, skipping and
cancelling its steps over HTTP.

WHY: Verifies that:
1. Only the active step accepts a decision; others get 409 and nothing changes
2. The derived status and active step are returned on every response
3. An approved workflow unlocks acceptance of the proposal
"""

import pytest

from httpx import AsyncClient

from tests.factories import ProposalFactory


def _url(proposal_id: int, suffix: str = "") -> str:
    return f"/api/proposals/{proposal_id}/approval-workflow{suffix}"


async def _initiate(client: AsyncClient, proposal_id: int, approvers: list) -> dict:
    response = await client.post(_url(proposal_id), json={"approvers": approvers})
    assert response.status_code == 201, response.text
    return response.json()


class TestInitiateWorkflow:
    """Tests for POST .../approval-workflow."""

    @pytest.mark.asyncio
    async def test_initiate(self, client: AsyncClient, db_session, two_approvers: list):
        proposal = await ProposalFactory.create(db_session)

        data = await _initiate(client, proposal.id, two_approvers)

        assert data["proposal_id"] == proposal.id
        assert data["status"] == "pending"
        assert [s["order"] for s in data["steps"]] == [1, 2]
        assert data["active_step_id"] == data["steps"][0]["id"]
        assert data["steps"][0]["is_active"] is True
        assert data["steps"][1]["is_active"] is False
        assert data["progress"]["pending_steps"] == 2
        assert data["progress"]["current_step_order"] == 1

    @pytest.mark.asyncio
    async def test_initiate_without_approvers(self, client: AsyncClient, db_session):
        proposal = await ProposalFactory.create(db_session)

        response = await client.post(_url(proposal.id), json={"approvers": []})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_initiate_twice(self, client: AsyncClient, db_session, two_approvers: list):
        proposal = await ProposalFactory.create(db_session)
        await _initiate(client, proposal.id, two_approvers)

        response = await client.post(_url(proposal.id), json={"approvers": two_approvers})

        assert response.status_code == 409
        assert response.json()["error"] == "ApprovalWorkflowExistsError"

    @pytest.mark.asyncio
    async def test_initiate_for_missing_proposal(self, client: AsyncClient, two_approvers: list):
        response = await client.post(_url(4242), json={"approvers": two_approvers})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_get_missing_workflow(self, client: AsyncClient, db_session):
        proposal = await ProposalFactory.create(db_session)

        response = await client.get(_url(proposal.id))

        assert response.status_code == 404
        assert response.json()["error"] == "ApprovalWorkflowNotFoundError"


class TestDecisions:
    """Tests for step decisions."""

    @pytest.mark.asyncio
    async def test_approve_in_order(self, client: AsyncClient, db_session, two_approvers: list):
        proposal = await ProposalFactory.create(db_session)
        workflow = await _initiate(client, proposal.id, two_approvers)
        first, second = (s["id"] for s in workflow["steps"])

        response = await client.post(
            _url(proposal.id, f"/steps/{first}/decision"),
            json={"decision": "approve", "comments": "Pricing checked"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["active_step_id"] == second
        assert data["steps"][0]["status"] == "approved"
        assert data["steps"][0]["comments"] == "Pricing checked"
        assert data["steps"][0]["decided_at"] is not None

        data = (
            await client.post(
                _url(proposal.id, f"/steps/{second}/decision"), json={"decision": "approve"}
            )
        ).json()

        assert data["status"] == "approved"
        assert data["active_step_id"] is None
        assert data["completed_at"] is not None

        proposal_data = (await client.get(f"/api/proposals/{proposal.id}")).json()
        assert proposal_data["approval_status"] == "approved"

    @pytest.mark.asyncio
    async def test_deciding_non_active_step_conflicts(
        self, client: AsyncClient, db_session, two_approvers: list
    ):
        proposal = await ProposalFactory.create(db_session)
        workflow = await _initiate(client, proposal.id, two_approvers)
        second = workflow["steps"][1]["id"]

        response = await client.post(
            _url(proposal.id, f"/steps/{second}/decision"), json={"decision": "approve"}
        )

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "ApprovalOrderViolationError"
        assert body["details"]["refusal"] == "not_active_step"

        current = (await client.get(_url(proposal.id))).json()
        assert [s["status"] for s in current["steps"]] == ["pending", "pending"]
        assert current["active_step_id"] == workflow["steps"][0]["id"]

    @pytest.mark.asyncio
    async def test_rejection_closes_workflow(
        self, client: AsyncClient, db_session, two_approvers: list
    ):
        proposal = await ProposalFactory.create(db_session)
        workflow = await _initiate(client, proposal.id, two_approvers)
        first, second = (s["id"] for s in workflow["steps"])

        data = (
            await client.post(
                _url(proposal.id, f"/steps/{first}/decision"),
                json={"decision": "reject", "comments": "Margin below floor"},
            )
        ).json()

        assert data["status"] == "rejected"
        assert data["active_step_id"] is None

        response = await client.post(
            _url(proposal.id, f"/steps/{second}/decision"), json={"decision": "approve"}
        )
        assert response.status_code == 409
        assert response.json()["details"]["refusal"] == "workflow_closed"

    @pytest.mark.asyncio
    async def test_unknown_step(self, client: AsyncClient, db_session, two_approvers: list):
        proposal = await ProposalFactory.create(db_session)
        await _initiate(client, proposal.id, two_approvers)

        response = await client.post(
            _url(proposal.id, "/steps/9999/decision"), json={"decision": "approve"}
        )

        assert response.status_code == 404
        assert response.json()["error"] == "ApprovalStepNotFoundError"

    @pytest.mark.asyncio
    async def test_invalid_decision(self, client: AsyncClient, db_session, two_approvers: list):
        proposal = await ProposalFactory.create(db_session)
        workflow = await _initiate(client, proposal.id, two_approvers)

        response = await client.post(
            _url(proposal.id, f"/steps/{workflow['steps'][0]['id']}/decision"),
            json={"decision": "maybe"},
        )

        assert response.status_code == 400


class TestSkipAndCancel:
    """Tests for skipping optional steps and cancelling."""

    @pytest.mark.asyncio
    async def test_skip_optional_step(self, client: AsyncClient, db_session):
        proposal = await ProposalFactory.create(db_session)
        workflow = await _initiate(
            client,
            proposal.id,
            [
                {"approver_id": "u-legal", "required": False},
                {"approver_id": "u-finance"},
            ],
        )
        first = workflow["steps"][0]["id"]

        response = await client.post(_url(proposal.id, f"/steps/{first}/skip"))

        assert response.status_code == 200
        data = response.json()
        assert data["steps"][0]["status"] == "skipped"
        assert data["active_step_id"] == data["steps"][1]["id"]
        assert data["progress"]["skipped_steps"] == 1

    @pytest.mark.asyncio
    async def test_skip_required_step(self, client: AsyncClient, db_session, two_approvers: list):
        proposal = await ProposalFactory.create(db_session)
        workflow = await _initiate(client, proposal.id, two_approvers)

        response = await client.post(
            _url(proposal.id, f"/steps/{workflow['steps'][0]['id']}/skip"),
            json={"comments": "Not needed"},
        )

        assert response.status_code == 409
        assert response.json()["details"]["refusal"] == "required_step"

    @pytest.mark.asyncio
    async def test_cancel(self, client: AsyncClient, db_session, two_approvers: list):
        proposal = await ProposalFactory.create(db_session)
        await _initiate(client, proposal.id, two_approvers)

        response = await client.post(_url(proposal.id, "/cancel"), json={"reason": "Re-scoping"})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "cancelled"
        assert data["cancel_reason"] == "Re-scoping"
        assert data["active_step_id"] is None


class TestApprovalGatesAcceptance:
    """End-to-end: approval workflow unlocks mark-accepted."""

    @pytest.mark.asyncio
    async def test_accept_after_full_approval(
        self, client: AsyncClient, firewall_item_data: dict, two_approvers: list
    ):
        created = (
            await client.post(
                "/api/proposals", json={"title": "Co-managed IT", "items": [firewall_item_data]}
            )
        ).json()
        proposal_id = created["id"]
        workflow = await _initiate(client, proposal_id, two_approvers)
        assert (await client.post(f"/api/proposals/{proposal_id}/send")).status_code == 200

        blocked = await client.post(f"/api/proposals/{proposal_id}/accept")
        assert blocked.status_code == 422

        for step in workflow["steps"]:
            response = await client.post(
                _url(proposal_id, f"/steps/{step['id']}/decision"), json={"decision": "approve"}
            )
            assert response.status_code == 200

        readiness = (await client.get(f"/api/proposals/{proposal_id}/readiness")).json()
        assert readiness["can_mark_accepted"] is True

        accepted = await client.post(f"/api/proposals/{proposal_id}/accept")
        assert accepted.status_code == 200
        assert accepted.json()["status"] == "accepted"

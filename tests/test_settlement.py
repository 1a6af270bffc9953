"""
Tests for webhook settlement (POST /webhooks/stripe).

These tests verify:
  - payment_intent.succeeded completes the transaction, transfers exactly
    `amount` credits to the buyer, appends one CARBON_OFFSET impact entry
    and increments total_offset by `amount`
  - Redelivered events and distinct events for an already-settled payment
    change nothing
  - Invalid or missing signatures are rejected with 400 before any state
    changes
  - A failure while applying an event rolls everything back and answers
    500, and the redelivery is then processed normally
  - A commit that fails is answered with 500, never acknowledged
  - A transaction whose held credits went missing is not settled
  - Failed and cancelled payments release held credits
  - Events for unknown payment intents and unhandled event types are
    acknowledged without effect
  - Payment events without a payment intent id are acknowledged unapplied
"""

import json
import time
import uuid
from unittest.mock import AsyncMock, patch

from sqlalchemy import select, update

from carbon_market.models.credit import CarbonCredit, CreditStatus
from conftest import make_event, sign_payload

SUCCEEDED = "payment_intent.succeeded"
FAILED = "payment_intent.payment_failed"
CANCELED = "payment_intent.canceled"


class TestSuccessfulSettlement:

    async def test_settlement_transfers_credits_and_records_impact(
        self, client, authenticated_client, create_project, checkout, send_webhook
    ):
        project = await create_project(estimated_credits=10)
        started = await checkout(project["id"], 3)

        response = await send_webhook(SUCCEEDED, started["payment_intent_id"])
        assert response.status_code == 200
        assert response.json() == {"received": True, "duplicate": False}

        txn = await authenticated_client.get(f"/payments/{started['transaction_id']}")
        assert txn.json()["status"] == "COMPLETED"

        mine = (await authenticated_client.get("/credits/mine")).json()
        assert len(mine) == 3
        assert all(c["status"] == "SOLD" for c in mine)
        assert all(c["owner_id"] == authenticated_client.user_id for c in mine)
        assert all(c["project_id"] == project["id"] for c in mine)

        impacts = (await authenticated_client.get("/impact")).json()
        assert impacts["pagination"]["total"] == 1
        entry = impacts["impacts"][0]
        assert entry["impact_type"] == "CARBON_OFFSET"
        assert entry["value"] == 3
        assert entry["unit"] == "credits"
        assert entry["verified"] is True
        assert entry["transaction_id"] == started["transaction_id"]
        assert entry["project_id"] == project["id"]
        assert project["title"] in entry["description"]

        profile = (await authenticated_client.get("/users/profile")).json()
        assert profile["total_offset"] == 3

        detail = await client.get(f"/projects/{project['id']}")
        assert detail.json()["available_credits"] == 7

    async def test_offset_accumulates_across_purchases(
        self, authenticated_client, create_project, checkout, send_webhook
    ):
        project = await create_project(estimated_credits=10)
        first = await checkout(project["id"], 2)
        second = await checkout(project["id"], 5)

        await send_webhook(SUCCEEDED, first["payment_intent_id"])
        await send_webhook(SUCCEEDED, second["payment_intent_id"])

        profile = (await authenticated_client.get("/users/profile")).json()
        assert profile["total_offset"] == 7

        summary = (await authenticated_client.get("/impact/summary")).json()
        assert summary["cached_total_offset"] == 7
        assert summary["computed_total_offset"] == 7
        assert summary["match"] is True

    async def test_settlement_only_affects_the_buyer(
        self, second_authenticated_client, create_project, checkout, send_webhook
    ):
        project = await create_project()
        started = await checkout(project["id"], 2)
        await send_webhook(SUCCEEDED, started["payment_intent_id"])

        other = (await second_authenticated_client.get("/users/profile")).json()
        assert other["total_offset"] == 0
        assert (await second_authenticated_client.get("/credits/mine")).json() == []


class TestIdempotency:

    async def test_redelivered_event_is_acknowledged_once(
        self, authenticated_client, create_project, checkout, send_webhook
    ):
        project = await create_project(estimated_credits=10)
        started = await checkout(project["id"], 3)

        first = await send_webhook(SUCCEEDED, started["payment_intent_id"], event_id="evt_same")
        second = await send_webhook(SUCCEEDED, started["payment_intent_id"], event_id="evt_same")

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json() == {"received": True, "duplicate": True}

        assert len((await authenticated_client.get("/credits/mine")).json()) == 3
        assert (await authenticated_client.get("/impact")).json()["pagination"]["total"] == 1
        assert (await authenticated_client.get("/users/profile")).json()["total_offset"] == 3

    async def test_distinct_event_for_settled_payment_is_a_no_op(
        self, client, authenticated_client, create_project, checkout, send_webhook
    ):
        project = await create_project(estimated_credits=10)
        started = await checkout(project["id"], 3)

        await send_webhook(SUCCEEDED, started["payment_intent_id"], event_id="evt_one")
        response = await send_webhook(SUCCEEDED, started["payment_intent_id"], event_id="evt_two")
        assert response.status_code == 200
        assert response.json()["duplicate"] is False

        assert len((await authenticated_client.get("/credits/mine")).json()) == 3
        assert (await authenticated_client.get("/impact")).json()["pagination"]["total"] == 1
        assert (await authenticated_client.get("/users/profile")).json()["total_offset"] == 3
        detail = await client.get(f"/projects/{project['id']}")
        assert detail.json()["available_credits"] == 7


class TestSignatureVerification:

    async def test_wrong_secret_rejected(self, client, authenticated_client, create_project, checkout):
        project = await create_project()
        started = await checkout(project["id"], 2)

        payload = make_event(SUCCEEDED, started["payment_intent_id"])
        response = await client.post(
            "/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": sign_payload(payload, secret="whsec_attacker")},
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "invalid_signature"

        txn = await authenticated_client.get(f"/payments/{started['transaction_id']}")
        assert txn.json()["status"] == "PENDING"
        assert (await authenticated_client.get("/users/profile")).json()["total_offset"] == 0

    async def test_missing_signature_rejected(self, client, create_project, checkout):
        project = await create_project()
        started = await checkout(project["id"], 1)

        response = await client.post(
            "/webhooks/stripe",
            content=make_event(SUCCEEDED, started["payment_intent_id"]),
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "invalid_signature"

    async def test_tampered_body_rejected(self, client, create_project, checkout):
        project = await create_project()
        started = await checkout(project["id"], 1)

        payload = make_event(SUCCEEDED, "pi_someone_else")
        header = sign_payload(payload)
        tampered = payload.replace("pi_someone_else", started["payment_intent_id"])

        response = await client.post(
            "/webhooks/stripe", content=tampered, headers={"Stripe-Signature": header}
        )
        assert response.status_code == 400

    async def test_stale_timestamp_rejected(self, client, create_project, checkout):
        project = await create_project()
        started = await checkout(project["id"], 1)

        payload = make_event(SUCCEEDED, started["payment_intent_id"])
        header = sign_payload(payload, timestamp=int(time.time()) - 3600)
        response = await client.post(
            "/webhooks/stripe", content=payload, headers={"Stripe-Signature": header}
        )
        assert response.status_code == 400

    async def test_signed_non_event_payload_rejected(self, client):
        payload = json.dumps({"hello": "world"})
        response = await client.post(
            "/webhooks/stripe", content=payload, headers={"Stripe-Signature": sign_payload(payload)}
        )
        assert response.status_code == 400

    async def test_rejected_delivery_is_not_recorded(
        self, client, authenticated_client, create_project, checkout, send_webhook
    ):
        """A bad signature must not burn the event id for the genuine delivery."""
        project = await create_project()
        started = await checkout(project["id"], 2)

        payload = make_event(SUCCEEDED, started["payment_intent_id"], event_id="evt_genuine")
        await client.post(
            "/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": sign_payload(payload, secret="whsec_wrong")},
        )

        response = await send_webhook(SUCCEEDED, started["payment_intent_id"], event_id="evt_genuine")
        assert response.json() == {"received": True, "duplicate": False}
        assert (await authenticated_client.get("/users/profile")).json()["total_offset"] == 2


class TestFailureRollback:

    async def test_failure_answers_500_and_rolls_back(
        self, client, authenticated_client, create_project, checkout, send_webhook
    ):
        project = await create_project(estimated_credits=10)
        started = await checkout(project["id"], 3)

        with patch(
            "carbon_market.services.impact_service.record_impact",
            new=AsyncMock(side_effect=RuntimeError("database went away")),
        ):
            response = await send_webhook(SUCCEEDED, started["payment_intent_id"], event_id="evt_retry")

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error", "error_type": "internal_error"}

        txn = await authenticated_client.get(f"/payments/{started['transaction_id']}")
        assert txn.json()["status"] == "PENDING"
        assert (await authenticated_client.get("/credits/mine")).json() == []
        reserved = await client.get(
            "/credits", params={"project_id": project["id"], "status": "RESERVED"}
        )
        assert reserved.json()["pagination"]["total"] == 3

        # Stripe redelivers the same event; it is processed from scratch
        retry = await send_webhook(SUCCEEDED, started["payment_intent_id"], event_id="evt_retry")
        assert retry.status_code == 200
        assert retry.json()["duplicate"] is False

        txn = await authenticated_client.get(f"/payments/{started['transaction_id']}")
        assert txn.json()["status"] == "COMPLETED"
        assert (await authenticated_client.get("/users/profile")).json()["total_offset"] == 3

    async def test_failed_commit_is_not_acknowledged(
        self, authenticated_client, create_project, checkout, send_webhook, failing_commits
    ):
        project = await create_project(estimated_credits=10)
        started = await checkout(project["id"], 3)

        failing_commits(True)
        response = await send_webhook(SUCCEEDED, started["payment_intent_id"], event_id="evt_commit")
        failing_commits(False)

        assert response.status_code == 500
        assert response.json()["error_type"] == "internal_error"

        txn = await authenticated_client.get(f"/payments/{started['transaction_id']}")
        assert txn.json()["status"] == "PENDING"
        assert (await authenticated_client.get("/users/profile")).json()["total_offset"] == 0

        # Nothing was recorded, so the redelivery settles the payment
        retry = await send_webhook(SUCCEEDED, started["payment_intent_id"], event_id="evt_commit")
        assert retry.json() == {"received": True, "duplicate": False}
        txn = await authenticated_client.get(f"/payments/{started['transaction_id']}")
        assert txn.json()["status"] == "COMPLETED"
        assert (await authenticated_client.get("/users/profile")).json()["total_offset"] == 3

    async def test_missing_held_credits_are_not_settled(
        self, client, authenticated_client, create_project, checkout, send_webhook, session_factory
    ):
        project = await create_project(estimated_credits=10)
        started = await checkout(project["id"], 3)

        # One held credit is put back in the pool behind the checkout's back
        async with session_factory() as session:
            held = (
                await session.execute(
                    select(CarbonCredit.id)
                    .where(CarbonCredit.transaction_id == uuid.UUID(started["transaction_id"]))
                    .limit(1)
                )
            ).scalar_one()
            await session.execute(
                update(CarbonCredit)
                .where(CarbonCredit.id == held)
                .values(status=CreditStatus.AVAILABLE, transaction_id=None)
            )
            await session.commit()

        response = await send_webhook(SUCCEEDED, started["payment_intent_id"])
        assert response.status_code == 500

        txn = await authenticated_client.get(f"/payments/{started['transaction_id']}")
        assert txn.json()["status"] == "PENDING"
        assert (await authenticated_client.get("/credits/mine")).json() == []
        assert (await authenticated_client.get("/impact")).json()["pagination"]["total"] == 0
        assert (await authenticated_client.get("/users/profile")).json()["total_offset"] == 0
        reserved = await client.get(
            "/credits", params={"project_id": project["id"], "status": "RESERVED"}
        )
        assert reserved.json()["pagination"]["total"] == 2


class TestFailedAndCancelledPayments:

    async def test_failed_payment_releases_credits(
        self, client, authenticated_client, create_project, checkout, send_webhook
    ):
        project = await create_project(estimated_credits=5)
        started = await checkout(project["id"], 3)

        response = await send_webhook(FAILED, started["payment_intent_id"])
        assert response.status_code == 200

        txn = await authenticated_client.get(f"/payments/{started['transaction_id']}")
        assert txn.json()["status"] == "FAILED"
        detail = await client.get(f"/projects/{project['id']}")
        assert detail.json()["available_credits"] == 5
        assert (await authenticated_client.get("/users/profile")).json()["total_offset"] == 0

    async def test_cancelled_payment_releases_credits(
        self, client, authenticated_client, create_project, checkout, send_webhook
    ):
        project = await create_project(estimated_credits=5)
        started = await checkout(project["id"], 2)

        await send_webhook(CANCELED, started["payment_intent_id"])

        txn = await authenticated_client.get(f"/payments/{started['transaction_id']}")
        assert txn.json()["status"] == "CANCELLED"
        detail = await client.get(f"/projects/{project['id']}")
        assert detail.json()["available_credits"] == 5

    async def test_released_credits_can_be_bought_again(
        self, authenticated_client, second_authenticated_client, create_project, checkout, send_webhook
    ):
        project = await create_project(estimated_credits=3)
        started = await checkout(project["id"], 3)
        await send_webhook(FAILED, started["payment_intent_id"])

        response = await second_authenticated_client.post(
            "/payments", json={"project_id": project["id"], "amount": 3}
        )
        assert response.status_code == 201

    async def test_success_after_failure_is_not_applied(
        self, authenticated_client, create_project, checkout, send_webhook
    ):
        """FAILED is terminal; a late success needs a manual refund, not credits."""
        project = await create_project(estimated_credits=5)
        started = await checkout(project["id"], 2)

        await send_webhook(FAILED, started["payment_intent_id"])
        response = await send_webhook(SUCCEEDED, started["payment_intent_id"])
        assert response.status_code == 200

        txn = await authenticated_client.get(f"/payments/{started['transaction_id']}")
        assert txn.json()["status"] == "FAILED"
        assert (await authenticated_client.get("/credits/mine")).json() == []
        assert (await authenticated_client.get("/users/profile")).json()["total_offset"] == 0

    async def test_failure_after_success_is_ignored(
        self, authenticated_client, create_project, checkout, send_webhook
    ):
        project = await create_project(estimated_credits=5)
        started = await checkout(project["id"], 2)

        await send_webhook(SUCCEEDED, started["payment_intent_id"])
        await send_webhook(FAILED, started["payment_intent_id"])

        txn = await authenticated_client.get(f"/payments/{started['transaction_id']}")
        assert txn.json()["status"] == "COMPLETED"
        assert len((await authenticated_client.get("/credits/mine")).json()) == 2


class TestIgnoredEvents:

    async def test_unknown_payment_intent(self, authenticated_client, send_webhook):
        response = await send_webhook(SUCCEEDED, "pi_never_created")
        assert response.status_code == 200
        assert (await authenticated_client.get("/users/profile")).json()["total_offset"] == 0

    async def test_unhandled_event_type(self, authenticated_client, create_project, checkout, send_webhook):
        project = await create_project()
        started = await checkout(project["id"], 1)

        response = await send_webhook("payment_intent.created", started["payment_intent_id"])
        assert response.status_code == 200
        assert response.json()["received"] is True

        txn = await authenticated_client.get(f"/payments/{started['transaction_id']}")
        assert txn.json()["status"] == "PENDING"

    async def test_payment_event_without_intent_id(
        self, client, authenticated_client, create_project, checkout
    ):
        project = await create_project()
        started = await checkout(project["id"], 1)

        payload = json.dumps({
            "id": "evt_no_object_id",
            "object": "event",
            "type": SUCCEEDED,
            "data": {"object": {"object": "payment_intent"}},
        })
        response = await client.post(
            "/webhooks/stripe", content=payload, headers={"Stripe-Signature": sign_payload(payload)}
        )
        assert response.status_code == 200
        assert response.json()["received"] is True

        txn = await authenticated_client.get(f"/payments/{started['transaction_id']}")
        assert txn.json()["status"] == "PENDING"

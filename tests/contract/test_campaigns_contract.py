"""
Contract tests for /api/campaigns, /api/delivery-receipt and /api/analytics.
"""
from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from crm_platform.ai.rule_generator import RuleGenerator
from crm_platform.api.app import create_app
from crm_platform.api.dependencies import build_services
from crm_platform.stores import InMemoryStore


@pytest.fixture
def services():
    services = build_services(InMemoryStore(), rule_generator=MagicMock(spec=RuleGenerator))
    # deliveries are driven by posting receipts
    services.dispatcher.queue = MagicMock()
    services.dispatcher.queue.submit_many.return_value = []
    return services


@pytest.fixture
def client(services):
    with TestClient(create_app(services, enable_scheduler=False)) as client:
        yield client


@pytest.fixture
def segment(client):
    for index, (name, spend) in enumerate([("Priya Patel", 15000), ("Arjun Mehta", 20000), ("Kavya Rao", 25000)]):
        customer = client.post("/api/customers", json={"name": name, "email": f"c{index}@example.com"}).json()
        client.post("/api/orders", json={"customerId": customer["id"], "amount": spend})
    return client.post(
        "/api/segments",
        json={"name": "High spenders", "rules": [{"field": "totalSpend", "operator": "gt", "value": 10000}]},
    ).json()


def campaign_payload(segment_id, **overrides):
    payload = {
        "name": "Diwali offer",
        "segmentId": segment_id,
        "message": "Hi {{firstName}}, enjoy 10% off!",
        "channel": "email",
    }
    payload.update(overrides)
    return payload


def test_create_launches_by_default(client, segment):
    response = client.post("/api/campaigns", json=campaign_payload(segment["id"]))

    assert response.status_code == status.HTTP_201_CREATED
    body = response.json()
    assert body["status"] == "active"
    assert body["audienceSize"] == 3
    assert body["sentCount"] == 3
    assert body["launchedAt"] is not None

    logs = client.get(f"/api/campaigns/{body['id']}/logs").json()
    assert len(logs) == 3
    assert {log["status"] for log in logs} == {"SENT"}
    assert "Hi Priya, enjoy 10% off!" in {log["message"] for log in logs}


def test_launch_draft(client, segment):
    draft = client.post("/api/campaigns", json=campaign_payload(segment["id"], launch=False)).json()
    assert draft["status"] == "draft"

    response = client.post(f"/api/campaigns/{draft['id']}/launch")

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["audienceSize"] == 3
    assert len(body["messageIds"]) == 3
    assert body["campaign"]["status"] == "active"


def test_launch_twice_conflicts(client, segment):
    campaign = client.post("/api/campaigns", json=campaign_payload(segment["id"])).json()

    response = client.post(f"/api/campaigns/{campaign['id']}/launch")

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["details"]["status"] == "active"


def test_launch_unknown_campaign(client):
    assert client.post("/api/campaigns/999/launch").status_code == status.HTTP_404_NOT_FOUND


def test_create_with_unknown_segment(client):
    response = client.post("/api/campaigns", json=campaign_payload(999))

    assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.parametrize(
    "overrides",
    [{"channel": "fax"}, {"message": ""}, {"name": ""}, {"segmentId": "abc"}],
)
def test_invalid_campaign_payload(client, segment, overrides):
    response = client.post("/api/campaigns", json=campaign_payload(segment["id"], **overrides))

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_receipts_drive_stats_and_completion(client, segment):
    campaign = client.post("/api/campaigns", json=campaign_payload(segment["id"])).json()
    logs = client.get(f"/api/campaigns/{campaign['id']}/logs").json()

    for log, receipt_status in zip(logs, ["DELIVERED", "delivered", "FAILED"]):
        response = client.post(
            "/api/delivery-receipt",
            json={"messageId": log["messageId"], "status": receipt_status, "errorReason": "Mailbox full"},
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"messageId": log["messageId"], "applied": True}

    stats = client.get(f"/api/campaigns/{campaign['id']}/stats").json()
    assert stats["sentCount"] == 3
    assert stats["deliveredCount"] == 2
    assert stats["failedCount"] == 1
    assert Decimal(str(stats["deliveryRate"])) == Decimal("66.67")

    finished = client.get(f"/api/campaigns/{campaign['id']}").json()
    assert finished["status"] == "completed"
    assert finished["completedAt"] is not None

    failed = client.get(f"/api/campaigns/{campaign['id']}/logs", params={"status": "FAILED"}).json()
    assert len(failed) == 1
    assert failed[0]["errorReason"] == "Mailbox full"

    delivered = client.get(f"/api/campaigns/{campaign['id']}/logs", params={"status": "DELIVERED"}).json()
    assert all(log["errorReason"] is None for log in delivered)

    overview = client.get("/api/analytics/overview").json()
    assert overview["messagesSent"] == 3
    assert overview["messagesDelivered"] == 2
    assert overview["totalCampaigns"] == 1
    assert Decimal(str(overview["totalRevenue"])) == Decimal("60000")


def test_duplicate_receipt_not_applied(client, segment):
    campaign = client.post("/api/campaigns", json=campaign_payload(segment["id"])).json()
    log = client.get(f"/api/campaigns/{campaign['id']}/logs").json()[0]
    receipt = {"messageId": log["messageId"], "status": "DELIVERED"}

    client.post("/api/delivery-receipt", json=receipt)
    response = client.post("/api/delivery-receipt", json={**receipt, "status": "FAILED"})

    assert response.json()["applied"] is False
    stats = client.get(f"/api/campaigns/{campaign['id']}/stats").json()
    assert stats["deliveredCount"] == 1
    assert stats["failedCount"] == 0


@pytest.mark.parametrize("message_id", [str(uuid4()), "not-a-uuid"])
def test_unknown_receipt_is_acknowledged(client, message_id):
    response = client.post("/api/delivery-receipt", json={"messageId": message_id, "status": "DELIVERED"})

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["applied"] is False


def test_receipt_with_invalid_status_rejected(client):
    response = client.post("/api/delivery-receipt", json={"messageId": str(uuid4()), "status": "BOUNCED"})

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_list_campaigns_newest_first_and_filtered(client, segment):
    first = client.post("/api/campaigns", json=campaign_payload(segment["id"], launch=False)).json()
    second = client.post("/api/campaigns", json=campaign_payload(segment["id"])).json()

    listed = client.get("/api/campaigns").json()
    drafts = client.get("/api/campaigns", params={"status": "draft"}).json()

    assert [c["id"] for c in listed] == [second["id"], first["id"]]
    assert [c["id"] for c in drafts] == [first["id"]]


def test_stats_for_unknown_campaign(client):
    assert client.get("/api/campaigns/999/stats").status_code == status.HTTP_404_NOT_FOUND

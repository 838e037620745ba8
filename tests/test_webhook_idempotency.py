"""Test conversion webhooks: signatures and idempotent retries"""
import json
import time

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from lib.webhook_security import SIGNATURE_HEADER, TIMESTAMP_HEADER, WebhookValidator

WEBHOOK_SECRET = "whsec_test"


def webhook_body(campaign, **extra):
    payload = {
        "campaign_id": str(campaign.id),
        "conversion_type": "purchase",
        "conversion_value": "49.90",
        "customer_email": "buyer@example.com",
        "ref_code": "ABCD12",
    }
    payload.update(extra)
    return json.dumps(payload).encode()


@pytest.fixture
def signed_client(settings, store):
    settings = settings.model_copy(update={
        "require_webhook_signature": True,
        "webhook_secret": WEBHOOK_SECRET,
    })
    return TestClient(create_app(settings=settings, store=store))


def test_webhook_creates_conversion(client, store, org_id, campaign, link):
    response = client.post(f"/webhooks/conversions/{org_id}", content=webhook_body(campaign))

    assert response.status_code == 201
    assert response.json()["status"] == "created"
    assert len(store.conversions) == 1
    assert store.conversions[0].referral_link_id == link.id


def test_webhook_retry_is_accepted_once(client, store, org_id, campaign, link):
    body = webhook_body(campaign)

    first = client.post(f"/webhooks/conversions/{org_id}", content=body)
    second = client.post(f"/webhooks/conversions/{org_id}", content=body)

    assert first.status_code == 201
    assert second.status_code == 202
    assert second.json()["status"] == "accepted"
    assert len(store.conversions) == 1
    assert store.links[link.id].conversions_count == 1


def test_webhook_invalid_payload(client, org_id, campaign):
    response = client.post(
        f"/webhooks/conversions/{org_id}",
        content=webhook_body(campaign, conversion_type="refund")
    )

    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid conversion_type")


def test_webhook_requires_signature(signed_client, store, org_id, campaign, link):
    response = signed_client.post(f"/webhooks/conversions/{org_id}", content=webhook_body(campaign))

    assert response.status_code == 401
    assert response.json() == {"error": "Missing webhook signature"}
    assert store.conversions == []


def test_webhook_rejects_bad_signature(signed_client, store, org_id, campaign, link):
    response = signed_client.post(
        f"/webhooks/conversions/{org_id}",
        content=webhook_body(campaign),
        headers={SIGNATURE_HEADER: "sha256=deadbeef"}
    )

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid webhook signature"}


def test_webhook_accepts_valid_signature(signed_client, store, org_id, campaign, link):
    body = webhook_body(campaign)
    timestamp = str(int(time.time()))
    signature = WebhookValidator(WEBHOOK_SECRET).compute_signature(body, timestamp)

    response = signed_client.post(
        f"/webhooks/conversions/{org_id}",
        content=body,
        headers={SIGNATURE_HEADER: f"sha256={signature}", TIMESTAMP_HEADER: timestamp}
    )

    assert response.status_code == 201
    assert len(store.conversions) == 1

"""Test event ingestion and listing"""
from uuid import uuid4

from lib.models import CampaignStatus


def test_create_event(client, store, campaign, link, auth_headers):
    response = client.post("/api/events", json={
        "campaign_id": str(campaign.id),
        "event_type": "signup",
        "referral_link_id": str(link.id),
        "metadata": {"plan": "pro"},
        "ip_address": "203.0.113.7",
    }, headers=auth_headers)

    assert response.status_code == 201
    event = response.json()["event"]
    assert event["event_type"] == "signup"
    assert event["participant_id"] == str(link.participant_id)
    assert event["metadata"] == {"plan": "pro"}
    assert event["ip_hash"] and event["ip_hash"] != "203.0.113.7"
    assert len(store.events) == 1


def test_paused_campaign_rejects_event(client, store, org_id, auth_headers):
    paused = store.add_campaign(org_id, status=CampaignStatus.PAUSED)

    response = client.post("/api/events", json={
        "campaign_id": str(paused.id),
        "event_type": "click",
    }, headers=auth_headers)

    assert response.status_code == 400
    assert response.json() == {"error": "Campaign is not active"}
    assert store.events == []


def test_event_for_other_org_campaign_is_not_found(client, store, auth_headers):
    foreign = store.add_campaign(uuid4())

    response = client.post("/api/events", json={
        "campaign_id": str(foreign.id),
        "event_type": "click",
    }, headers=auth_headers)

    assert response.status_code == 404
    assert response.json() == {"error": "Campaign not found"}


def test_event_with_link_from_other_campaign(client, store, org_id, campaign, auth_headers):
    other = store.add_campaign(org_id)
    other_link = store.add_link(other, "OTHER1")

    response = client.post("/api/events", json={
        "campaign_id": str(campaign.id),
        "event_type": "click",
        "referral_link_id": str(other_link.id),
    }, headers=auth_headers)

    assert response.status_code == 404
    assert "not associated with campaign" in response.json()["error"]


def test_invalid_event_type(client, store, campaign, auth_headers):
    response = client.post("/api/events", json={
        "campaign_id": str(campaign.id),
        "event_type": "teleport",
    }, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid event_type")
    assert store.events == []


def test_missing_fields(client, auth_headers):
    response = client.post("/api/events", json={}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "Missing required fields: campaign_id, event_type"


def test_list_events_paginates(client, store, link, auth_headers):
    for _ in range(3):
        client.get("/r/ABCD12", follow_redirects=False)

    response = client.get("/api/events?event_type=click&limit=2", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert len(body["events"]) == 2
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}

"""Test fraud heuristics and the review endpoints"""
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from lib.fraud import (
    REASON_BOT,
    REASON_SAME_IP,
    REASON_VELOCITY,
    FraudThresholds,
    clicks_per_hour,
    has_same_ip_burst,
    is_bot_user_agent,
    is_velocity_suspicious,
    score_clicks,
)
from lib.models import Event, EventType


def make_click(link_id, ip_hash="ip-a", user_agent="Mozilla/5.0", org_id=None, campaign_id=None, minutes_ago=5):
    return Event(
        id=uuid4(),
        org_id=org_id or uuid4(),
        campaign_id=campaign_id or uuid4(),
        referral_link_id=link_id,
        event_type=EventType.CLICK,
        ip_hash=ip_hash,
        user_agent=user_agent,
        created_at=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
    )


def test_velocity_threshold():
    assert is_velocity_suspicious(60, 1) is True
    assert is_velocity_suspicious(30, 1) is False
    assert is_velocity_suspicious(100, 2) is False
    assert is_velocity_suspicious(51, 1) is True


def test_clicks_per_hour_needs_positive_window():
    with pytest.raises(ValueError):
        clicks_per_hour(10, 0)


def test_same_ip_burst():
    link_id = uuid4()
    clicks = [make_click(link_id, ip_hash="ip-a") for _ in range(11)]
    assert has_same_ip_burst(clicks) is True
    assert has_same_ip_burst(clicks[:10]) is False


def test_missing_ip_never_counts_as_burst():
    link_id = uuid4()
    clicks = [make_click(link_id, ip_hash=None) for _ in range(20)]
    assert has_same_ip_burst(clicks) is False


@pytest.mark.parametrize("ua", [
    "Googlebot/2.1",
    "curl/8.4.0",
    "Wget/1.21",
    "Mozilla/5.0 (compatible; AhrefsBot/7.0)",
    "python web SCRAPER",
])
def test_bot_user_agents(ua):
    assert is_bot_user_agent(ua) is True


def test_browser_user_agent_is_not_bot():
    assert is_bot_user_agent("Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) Safari/605.1.15") is False
    assert is_bot_user_agent(None) is False


def test_score_combines_rules_and_caps_at_100():
    link_id = uuid4()
    clicks = [make_click(link_id, ip_hash="ip-a", user_agent="curl/8") for _ in range(60)]

    findings = score_clicks(clicks, FraudThresholds())

    assert len(findings) == 60
    assert set(findings[0].reasons) == {REASON_VELOCITY, REASON_SAME_IP, REASON_BOT}
    assert findings[0].score == 100


def test_scoring_is_per_link():
    quiet, busy = uuid4(), uuid4()
    clicks = [make_click(quiet, ip_hash=f"ip-{i}") for i in range(5)]
    clicks += [make_click(busy, ip_hash=f"ip-{i}") for i in range(55)]

    findings = score_clicks(clicks, FraudThresholds())

    assert {f.event.referral_link_id for f in findings} == {busy}
    assert all(f.reasons == [REASON_VELOCITY] for f in findings)
    assert all(f.score == 40 for f in findings)


def test_scan_flags_clicks_once(client, store, org_id, campaign, link, auth_headers):
    for _ in range(12):
        store.events.append(make_click(link.id, ip_hash="ip-a", org_id=org_id, campaign_id=campaign.id))
    store.events.append(make_click(link.id, ip_hash="ip-b", user_agent="Googlebot", org_id=org_id, campaign_id=campaign.id))
    store.events.append(make_click(link.id, ip_hash="ip-c", org_id=org_id, campaign_id=campaign.id))
    # outside the 60 minute window
    store.events.append(make_click(link.id, ip_hash="ip-a", org_id=org_id, campaign_id=campaign.id, minutes_ago=120))

    first = client.post("/api/fraud/scan", json={"campaign_id": str(campaign.id)}, headers=auth_headers)
    second = client.post("/api/fraud/scan", json={"campaign_id": str(campaign.id)}, headers=auth_headers)

    assert first.status_code == 200
    assert first.json()["flagged"] == 13
    reasons = {tuple(s["reasons"]) for s in first.json()["signals"]}
    assert reasons == {(REASON_SAME_IP,), (REASON_BOT,)}

    assert second.json()["flagged"] == 0
    assert len(store.signals) == 13


def test_scan_unknown_campaign(client, auth_headers):
    response = client.post("/api/fraud/scan", json={"campaign_id": str(uuid4())}, headers=auth_headers)
    assert response.status_code == 404


def test_review_signal(client, store, org_id, campaign, link, auth_headers):
    store.events.append(make_click(link.id, user_agent="curl/8", org_id=org_id, campaign_id=campaign.id))
    client.post("/api/fraud/scan", json={"campaign_id": str(campaign.id)}, headers=auth_headers)
    signal_id = store.signals[0].id

    listed = client.get("/api/fraud/signals?status=open", headers=auth_headers)
    updated = client.patch(f"/api/fraud/signals/{signal_id}", json={"status": "ignored"}, headers=auth_headers)

    assert listed.json()["pagination"]["total"] == 1
    assert updated.status_code == 200
    assert updated.json()["signal"]["status"] == "ignored"
    assert updated.json()["signal"]["reviewed_at"] is not None


def test_review_unknown_signal(client, auth_headers):
    response = client.patch(f"/api/fraud/signals/{uuid4()}", json={"status": "blocked"}, headers=auth_headers)
    assert response.status_code == 404

"""
Test the public referral redirect: cookie, landing URL, click recording
"""
from lib.models import CampaignStatus, EventType


def test_redirect_sets_cookie_and_landing_url(client, store, link):
    response = client.get("/r/ABCD12", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"] == "https://shop.example.com/landing?utm_source=newsletter"

    cookie = response.headers["set-cookie"]
    assert "ref_code=ABCD12" in cookie
    assert "Max-Age=2592000" in cookie
    assert "Path=/" in cookie
    assert "HttpOnly" in cookie


def test_redirect_records_exactly_one_click(client, store, link):
    client.get(
        "/r/ABCD12?utm_medium=email",
        headers={"User-Agent": "Mozilla/5.0", "Referer": "https://mail.example.com"},
        follow_redirects=False
    )

    assert store.links[link.id].clicks_count == 1
    assert len(store.events) == 1

    event = store.events[0]
    assert event.event_type == EventType.CLICK
    assert event.referral_link_id == link.id
    assert event.participant_id == link.participant_id
    assert event.utm_params == {"utm_medium": "email"}
    assert event.referrer == "https://mail.example.com"
    assert event.ip_hash is not None


def test_redirect_survives_click_write_failure(client, store, link):
    """Visitor still gets the cookie and the landing page when the insert throws"""
    store.fail_clicks = True

    response = client.get("/r/ABCD12", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"].startswith("https://shop.example.com/landing")
    assert "ref_code=ABCD12" in response.headers["set-cookie"]
    assert store.events == []
    assert store.links[link.id].clicks_count == 0


def test_unknown_code_returns_404(client, store, link):
    response = client.get("/r/NOPE99", follow_redirects=False)

    assert response.status_code == 404
    assert response.json() == {"error": "Referral link not found"}
    assert "set-cookie" not in response.headers
    assert store.events == []


def test_inactive_campaign_does_not_redirect(client, store, org_id):
    paused = store.add_campaign(org_id, status=CampaignStatus.PAUSED)
    store.add_link(paused, "PAUSE1")

    response = client.get("/r/PAUSE1", follow_redirects=False)

    assert response.status_code == 400
    assert response.json() == {"error": "Campaign is not active"}
    assert store.events == []


def test_campaign_without_landing_url_uses_fallback(client, store, org_id):
    campaign = store.add_campaign(org_id, landing_url=None)
    store.add_link(campaign, "NOLAND")

    response = client.get("/r/NOLAND", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"] == "/"

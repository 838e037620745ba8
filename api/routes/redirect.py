"""
Public referral redirect: resolve the code, record the click after the
response, drop the attribution cookie and send the visitor on
"""
import time

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import RedirectResponse

from api.dependencies import get_click_recorder, get_link_resolver, get_settings
from lib import prometheus_metrics as prom
from lib.attribution import ClickRecorder, LinkResolver, Visit
from lib.errors import CampaignInactive, NotFound
from lib.logging import get_logger
from lib.settings import Settings
from lib.tracking import append_utm, extract_utm

router = APIRouter(tags=["redirect"])
logger = get_logger(__name__)


@router.get("/r/{code}")
async def redirect_referral(
    code: str,
    request: Request,
    background_tasks: BackgroundTasks,
    resolver: LinkResolver = Depends(get_link_resolver),
    recorder: ClickRecorder = Depends(get_click_recorder),
    settings: Settings = Depends(get_settings)
):
    """
    Redirect a referral link to its campaign landing page.
    Click recording is scheduled as a background task so the redirect never
    waits on (or fails because of) attribution writes.
    """
    start_time = time.time()

    try:
        resolved = await resolver.resolve(code)
    except NotFound:
        prom.redirects_total.labels(status="not_found").inc()
        logger.warning(f"Unknown referral code attempted: {code}")
        raise
    except CampaignInactive:
        prom.redirects_total.labels(status="inactive").inc()
        logger.info(f"Referral code {code} points at an inactive campaign")
        raise

    visit = Visit(
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent", ""),
        referrer=request.headers.get("referer", ""),
        utm_params=extract_utm(request.query_params)
    )
    background_tasks.add_task(recorder.record_safely, resolved, visit)

    landing_url = resolved.campaign.landing_url or settings.fallback_url
    destination = append_utm(landing_url, resolved.link.utm)

    response = RedirectResponse(
        url=destination,
        status_code=302,
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
        background=background_tasks
    )
    response.set_cookie(
        key=settings.attribution_cookie_name,
        value=resolved.link.code,
        max_age=settings.attribution_cookie_max_age,
        path="/",
        httponly=True,
        samesite="lax"
    )

    prom.redirects_total.labels(status="success").inc()
    prom.redirect_duration_seconds.observe(time.time() - start_time)
    return response

"""Inbound conversion webhooks with signature validation and idempotent retries"""
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response
from pydantic import ValidationError

from api.dependencies import get_conversion_matcher, get_settings
from lib import prometheus_metrics as prom
from lib.attribution import ConversionMatcher
from lib.errors import Conflict, InvalidInput, Unauthorized
from lib.logging import get_logger
from lib.models import ConversionReport
from lib.settings import Settings
from lib.webhook_security import SIGNATURE_HEADER, TIMESTAMP_HEADER, WebhookValidator

router = APIRouter(prefix="/webhooks", tags=["webhooks"])
logger = get_logger(__name__)


def _verify_signature(request: Request, body: bytes, settings: Settings):
    signature = request.headers.get(SIGNATURE_HEADER)

    if not settings.webhook_signature_required:
        if not signature:
            logger.warning("Webhook received without signature (signature checks disabled)")
        return

    if not signature:
        prom.webhook_signature_verifications_total.labels(result="missing").inc()
        raise Unauthorized("Missing webhook signature")

    validator = WebhookValidator(settings.webhook_secret)
    timestamp = request.headers.get(TIMESTAMP_HEADER)
    if not validator.validate_header(body, signature, timestamp):
        prom.webhook_signature_verifications_total.labels(result="invalid").inc()
        client = request.client.host if request.client else "unknown"
        logger.warning(f"Invalid webhook signature from {client}")
        raise Unauthorized("Invalid webhook signature")

    prom.webhook_signature_verifications_total.labels(result="valid").inc()


@router.post("/conversions/{org_id}", status_code=201)
async def conversion_webhook(
    org_id: UUID,
    request: Request,
    response: Response,
    matcher: ConversionMatcher = Depends(get_conversion_matcher),
    settings: Settings = Depends(get_settings)
):
    """
    Record a conversion pushed by a merchant integration.
    Retries of an already recorded conversion get 202 Accepted.
    """
    body = await request.body()
    _verify_signature(request, body, settings)

    try:
        report = ConversionReport.model_validate_json(body)
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ())) or "payload"
        raise InvalidInput(f"Invalid {field}: {first.get('msg', 'invalid value')}")

    try:
        conversion = await matcher.match(org_id, report)
    except Conflict:
        logger.info(
            f"Duplicate webhook conversion for campaign {report.campaign_id} "
            f"({report.conversion_type.value})"
        )
        response.status_code = 202
        return {"status": "accepted", "message": "Conversion already recorded"}

    return {"status": "created", "conversion": conversion.model_dump(mode="json")}

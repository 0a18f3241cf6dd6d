"""
Inbound Email Webhook Route

Receives Postmark inbound webhook deliveries and hands them to the
scheduling processor.

Design Considerations:
- Always acknowledges with HTTP 200 so the provider never retries
- Raw body parsed here so malformed JSON is acknowledged, not rejected
- Redelivery handled by message-id de-duplication downstream
"""

import json
import logging

from fastapi import APIRouter, Depends, Request

from api.models.scheduling import WebhookAck
from api.services.scheduling_service import SchedulingService, get_scheduling_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post(
    "/inbound",
    response_model=WebhookAck,
    response_model_exclude_none=True,
    summary="Receive an inbound email"
)
async def receive_inbound_email(
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service)
):
    """
    Process one inbound email delivery.

    Returns:
        Acknowledgement with the processing outcome; the HTTP status is 200
        for every outcome, failures included
    """
    try:
        raw_body = await request.body()
        payload = json.loads(raw_body or b"null")
    except (ValueError, UnicodeDecodeError) as e:
        logger.warning(f"Inbound webhook body is not valid JSON: {str(e)}")
        return WebhookAck(status="ignored_invalid_payload", detail="invalid_json")

    try:
        outcome = await service.handle_inbound(payload)
    except Exception as e:
        logger.error(f"Inbound webhook processing failed: {str(e)}", exc_info=True)
        return WebhookAck(status="error", detail=e.__class__.__name__)

    logger.info(f"Inbound webhook handled: {outcome.status}")
    return WebhookAck(**outcome.to_dict())

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from gitgrade.api.deps import get_payment_gateway
from gitgrade.core.errors import WebhookSignatureError
from gitgrade.services.payment import PaymentGateway

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])
log = logging.getLogger(__name__)


@router.post("/paddle")
async def paddle_webhook(request: Request, gateway: PaymentGateway = Depends(get_payment_gateway)):
    """Paddle notification URL. Acknowledged with success unless the signature is wrong."""
    payload = await request.body()
    signature = request.headers.get("Paddle-Signature", "")
    try:
        gateway.handle_webhook(payload, signature)
    except WebhookSignatureError as e:
        log.warning("Paddle webhook rejected: %s", e)
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": "success"}

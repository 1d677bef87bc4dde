"""
Payment Webhook Routes
======================

Receives Crypto Pay updates. The raw body is verified against the
signature header before anything is parsed.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status

from phonepool.api.dependencies import get_subscription_service
from phonepool.billing.crypto_pay import SIGNATURE_HEADER
from phonepool.billing.subscriptions import SubscriptionService
from phonepool.utils.logger import get_logger
from phonepool.utils.security import sanitize_for_logging

logger = get_logger(__name__)

router = APIRouter(prefix="/api/cryptopay", tags=["Payments"])


@router.post("/webhook", summary="Crypto Pay webhook")
async def crypto_pay_webhook(
    request: Request,
    subscriptions: SubscriptionService = Depends(get_subscription_service),
) -> dict[str, Any]:
    """
    Handle a processor update.

    Raises:
        HTTPException: 400 without a signature header.
    """
    signature = request.headers.get(SIGNATURE_HEADER)
    if not signature:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing signature header")

    raw_body = await request.body()
    logger.info(
        "Payment webhook received",
        **sanitize_for_logging({"signature": signature, "size_bytes": len(raw_body)}),
    )
    outcome = await subscriptions.handle_webhook(raw_body, signature)
    return {"ok": True, "activated": bool(outcome and outcome.activated)}

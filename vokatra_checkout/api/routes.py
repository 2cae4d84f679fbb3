import json
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool
from vokatra_checkout.api.deps import get_app_settings, get_checkout_service, get_reconciler
from vokatra_checkout.application.checkout_service import CheckoutService
from vokatra_checkout.application.errors import CheckoutError, SignatureVerificationFailed, ValidationFailure
from vokatra_checkout.application.reconciler import PaymentReconciler
from vokatra_checkout.application.schemas import parse_checkout_request
from vokatra_checkout.core.logging_config import get_logger
from vokatra_checkout.core_settings import Settings

router = APIRouter(tags=["checkout"])
logger = get_logger(__name__)

OTHER_METHODS = ["GET", "HEAD", "PUT", "PATCH", "DELETE", "OPTIONS"]

def json_response(status_code: int, body: dict) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body, headers={"Access-Control-Allow-Origin": "*"})

@router.post("/create_checkout_session")
async def create_checkout_session(request: Request, service: CheckoutService = Depends(get_checkout_service)):
    """Validate a cart or donation, record it as pending and return the payment URL."""
    raw = await request.body()
    try:
        body = json.loads(raw)
    except ValueError:
        return json_response(400, {"error": "Invalid request body (JSON expected)"})

    try:
        checkout_request = parse_checkout_request(body)
        result = await run_in_threadpool(service.initiate_checkout, checkout_request)
    except ValidationFailure as e:
        logger.info(f"Checkout rejected: {e.message}", extra={'extra_fields': {'field': e.field}})
        return json_response(e.status_code, {"error": e.message})
    except CheckoutError as e:
        return json_response(e.status_code, {"error": e.message})
    except Exception:
        logger.error("Unexpected checkout failure", exc_info=True)
        return json_response(500, {"error": "Internal server error"})
    return json_response(200, result.model_dump(exclude_none=True))

@router.api_route("/create_checkout_session", methods=OTHER_METHODS, include_in_schema=False)
async def create_checkout_session_not_allowed():
    return json_response(405, {"error": "Method not allowed"})

@router.post("/stripe_webhook")
async def stripe_webhook(
    request: Request,
    reconciler: PaymentReconciler = Depends(get_reconciler),
    settings: Settings = Depends(get_app_settings),
):
    """Receive a Stripe event and apply it to the matching order or donation.

    Once the signature is verified the answer is 200 even if processing
    failed, unless WEBHOOK_ACK_ON_ERROR is disabled.
    """
    signature = request.headers.get("stripe-signature")
    if not signature:
        logger.error("Webhook rejected: missing Stripe-Signature header")
        return PlainTextResponse("Missing Stripe-Signature header", status_code=400)

    payload = await request.body()
    try:
        event = await run_in_threadpool(reconciler.authenticate, payload, signature)
        await run_in_threadpool(reconciler.dispatch, event)
    except SignatureVerificationFailed as e:
        logger.error(f"Invalid Stripe signature: {e}")
        return PlainTextResponse(f"Webhook signature invalid: {e}", status_code=400)
    except Exception:
        logger.error(
            "Webhook processing error, manual investigation required",
            exc_info=True,
            extra={'extra_fields': {'alert': 'webhook_processing_failed'}}
        )
        if settings.WEBHOOK_ACK_ON_ERROR:
            return PlainTextResponse("Webhook received with internal error", status_code=200)
        return PlainTextResponse("Webhook processing failed", status_code=500)
    return JSONResponse({"received": True})

@router.api_route("/stripe_webhook", methods=OTHER_METHODS, include_in_schema=False)
async def stripe_webhook_not_allowed():
    return PlainTextResponse("Method not allowed", status_code=405)

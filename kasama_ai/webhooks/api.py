"""Webhook endpoints. Bodies are read raw so signatures cover the exact bytes received."""
from __future__ import annotations

from fastapi import APIRouter, Request

from kasama_ai.core.contracts.webhooks import (
    CallbackRegistration,
    CallbackRegistrationResponse,
    WebhookOutcome,
    WebhookStats,
)
from kasama_ai.orchestrator.deps import get_orchestrator

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SIGNATURE_HEADERS = {
    "anthropic": "X-Signature",
    "openai": "OpenAI-Signature",
    "generic": "X-Webhook-Signature",
}


@router.post("/anthropic", response_model=WebhookOutcome)
async def anthropic_webhook(request: Request):
    return await _receive("anthropic", request)


@router.post("/openai", response_model=WebhookOutcome)
async def openai_webhook(request: Request):
    return await _receive("openai", request)


@router.post("/generic", response_model=WebhookOutcome)
async def generic_webhook(request: Request):
    return await _receive("generic", request)


@router.post("/callbacks", response_model=CallbackRegistrationResponse)
async def register_callback(registration: CallbackRegistration):
    return get_orchestrator().webhooks.register_callback(registration)


@router.post("/callback/{request_id}", response_model=WebhookOutcome)
async def deliver_callback(request_id: str, request: Request):
    body = await request.body()
    header = request.headers.get(SIGNATURE_HEADERS["generic"])
    return await get_orchestrator().webhooks.deliver_callback(request_id, body, header)


@router.get("/stats", response_model=WebhookStats)
def webhook_stats():
    return get_orchestrator().webhooks.stats()


async def _receive(provider: str, request: Request) -> WebhookOutcome:
    body = await request.body()
    header = request.headers.get(SIGNATURE_HEADERS[provider])
    return await get_orchestrator().webhooks.handle(provider, body, header)

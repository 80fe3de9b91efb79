"""Orchestration API. Run with: python -m kasama_ai.orchestrator.main"""
from __future__ import annotations

import logging
import os

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(name)s] %(message)s", datefmt="%H:%M:%S")
log = logging.getLogger("orchestrator")

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from kasama_ai.core.exceptions import OrchestratorError
from kasama_ai.orchestrator import agent_api, batch_api
from kasama_ai.orchestrator.deps import get_orchestrator
from kasama_ai.webhooks import api as webhooks_api

app = FastAPI(title="Kasama AI: Orchestration Layer")
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
app.include_router(agent_api.router)
app.include_router(batch_api.router)
app.include_router(webhooks_api.router)


@app.exception_handler(OrchestratorError)
async def orchestrator_error(request: Request, exc: OrchestratorError):
    if exc.status_code >= 500:
        log.warning("%s %s → %s %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": {"code": exc.code, "message": exc.message}})


@app.exception_handler(RequestValidationError)
async def request_validation_error(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    message = f"{first.get('msg', 'invalid request')} at {list(first.get('loc', []))}"
    return JSONResponse(status_code=400, content={"error": {"code": "INVALID_INPUT", "message": message}})


@app.on_event("startup")
async def startup():
    orchestrator = get_orchestrator()
    orchestrator.start()
    log.info(
        "%s ready: %s providers, %s agents",
        orchestrator.config.service_name,
        len(orchestrator.backends),
        len(orchestrator.config.agents),
    )


@app.on_event("shutdown")
async def shutdown():
    await get_orchestrator().shutdown()


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/stats")
def stats():
    return get_orchestrator().stats()


if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", "8000"))
    uvicorn.run(app, host="0.0.0.0", port=port)

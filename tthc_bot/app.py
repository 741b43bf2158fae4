from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse

from .config import load_settings
from .webhook import build_engine, handle_webhook

BASE_DIR = Path(__file__).resolve().parent

ENV_PATH = BASE_DIR / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=True)
else:
    load_dotenv()

log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

logging.getLogger("tthc").setLevel(log_level)
logger = logging.getLogger("tthc.app")

app = FastAPI(title="TTHC Fulfillment Webhook")

settings = load_settings()
engine = build_engine(settings)


@app.get("/", include_in_schema=False)
def health() -> PlainTextResponse:
    """Liveness probe used by the hosting platform."""
    return PlainTextResponse("TTHC Webhook OK")


@app.post("/fulfillment")
async def fulfillment(request: Request) -> JSONResponse:
    """Purpose: Handle Dialogflow fulfillment calls.
    Inputs/Outputs: Input is the raw HTTP request; output is a JSONResponse with the
        webhook response, always with status 200.
    Side Effects / State: May refresh the shared catalog cache.
    Dependencies: handle_webhook and the module-level engine.
    Failure Modes: Bodies that are not JSON are answered with the help fallback.
    If Removed: The platform has no fulfillment endpoint.
    Testing Notes: Post a sample request with TestClient and check the rich content.
    """
    payload: Any
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("fulfillment body is not valid JSON")
        payload = {}
    # Sheet reads block, keep them off the event loop.
    result = await run_in_threadpool(handle_webhook, payload, engine, settings.language_code)
    return JSONResponse(result)


def run() -> None:
    """Console entry point: serve the webhook with uvicorn on HOST:PORT."""
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()

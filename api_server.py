"""
Step Replay API Server

FastAPI server that accepts recorded click/type workflows via HTTP POST
and replays them in a browser.

Usage:
    python -m uvicorn api_server:app --host 0.0.0.0 --port 4000
    # or: python replay_cli.py serve
"""

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import replay_config
from browser_driver import PlaywrightDriver
from replay_errors import InvalidWorkflow
from workflow_engine import ReplayEngine
from workflow_models import Workflow

logger = logging.getLogger(__name__)

engine = ReplayEngine(PlaywrightDriver())

# HTTP status for each run-level failure kind
FAILURE_STATUS = {
    "InvalidWorkflow": 400,
    "StepError": 422,
}


@asynccontextmanager
async def lifespan(app):
    yield
    # Release browsers still waiting out their inspection grace period
    await engine.teardown.shutdown()


app = FastAPI(
    title="Step Replay API",
    description="HTTP API for replaying recorded browser workflows",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=replay_config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Endpoints ---


@app.get("/health")
async def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.post("/api/run")
async def run_workflow(request: Request):
    """Replay a workflow and report the per-step outcome."""
    # Count the bytes actually received; chunked uploads carry no Content-Length
    body = b""
    async for chunk in request.stream():
        body += chunk
        if len(body) > replay_config.MAX_BODY_BYTES:
            return JSONResponse(status_code=413, content={"error": "Request body too large"})

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        payload = None

    try:
        workflow = Workflow.from_payload(payload)
    except InvalidWorkflow as e:
        return JSONResponse(status_code=400, content={"error": str(e)})

    result = await engine.replay(workflow)

    if not result.ok:
        logger.error(f"Automation run failed: {result.error}: {result.reason}")
        return JSONResponse(
            status_code=FAILURE_STATUS.get(result.error, 500),
            content={
                "error": "Automation run failed",
                "kind": result.error,
                "details": result.reason,
                "steps": [o.model_dump() for o in result.steps],
            },
        )

    return {
        "ok": True,
        "steps": [o.model_dump() for o in result.steps],
        "duration_seconds": result.duration_seconds,
    }


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=replay_config.LOG_LEVEL,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    uvicorn.run(app, host=replay_config.API_HOST, port=replay_config.API_PORT)

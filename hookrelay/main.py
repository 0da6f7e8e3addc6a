from __future__ import annotations

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .auth import require_auth
from .config import reload_settings, settings, split_csv
from .engine import DispatchEngine, trigger
from .errors import LoadError, NotFoundError, ValidationError
from .logging_setup import RequestLogMiddleware, init_logging
from .metrics import LAT, REQS, router as metrics_router
from .models import LoadFailed, NoSubscribers, Ok, ValidationFailed
from .ratelimit import allow, client_key
from .sender import HttpSender
from .store import SubscriptionStore


class Health(BaseModel):
    status: str
    time: str


class RegisterBody(BaseModel):
    targetUrl: str


class UpdateBody(BaseModel):
    id: str
    newTargetUrl: str


class RemoveBody(BaseModel):
    id: str


@asynccontextmanager
async def lifespan(app: FastAPI):
    reload_settings()
    store = SubscriptionStore()
    store.init_db()
    if settings.SEED_ON_START:
        store.seed(split_csv(settings.SEED_TARGET_URLS))
    sender = HttpSender(
        max_retries=settings.MAX_RETRIES,
        base_delay=settings.BACKOFF_BASE_SECONDS,
        max_delay=settings.BACKOFF_MAX_SECONDS,
        timeout=settings.DELIVERY_TIMEOUT_SECONDS,
    )
    app.state.store = store
    app.state.engine = DispatchEngine.from_settings(store, sender, settings)
    try:
        yield
    finally:
        await sender.aclose()
        store.dispose()


init_logging(settings.LOG_LEVEL)

app = FastAPI(title="HookRelay", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestLogMiddleware)
app.include_router(metrics_router())

origins = split_csv(settings.CORS_ALLOW_ORIGINS)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_methods=["GET", "OPTIONS", "POST", "PATCH", "DELETE"],
    allow_headers=["*"],
    max_age=3600,
)


@app.middleware("http")
async def _metrics_and_rate(request: Request, call_next):
    method = request.method
    path = request.url.path
    start = time.time()
    status_code = 500
    try:
        if settings.RATE_LIMIT_ENABLED:
            key = client_key(request.headers, request.client.host if request.client else None)
            if not allow(key, settings.RATE_LIMIT_PER_MINUTE, settings.RATE_LIMIT_BURST):
                response = JSONResponse({"detail": "rate limit"}, status_code=429)
                status_code = response.status_code
                return response
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        duration = time.time() - start
        REQS.labels(method, path, str(status_code)).inc()
        LAT.labels(method, path).observe(duration)


def get_store(request: Request) -> SubscriptionStore:
    return request.app.state.store


def get_engine(request: Request) -> DispatchEngine:
    return request.app.state.engine


@app.get("/health", response_model=Health)
def health():
    return Health(status="ok", time=datetime.now(timezone.utc).isoformat())


@app.post("/api/webhooks/register", status_code=201)
def register_hook(
    body: RegisterBody,
    store: SubscriptionStore = Depends(get_store),
    _=Depends(require_auth),
):
    try:
        row = store.create(body.targetUrl)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return {"success": True, "message": "New hook created successfully", "id": row.id}


@app.post("/api/webhooks/update")
def update_hook(
    body: UpdateBody,
    store: SubscriptionStore = Depends(get_store),
    _=Depends(require_auth),
):
    try:
        row = store.update(body.id, body.newTargetUrl)
    except NotFoundError as exc:
        raise HTTPException(
            status_code=404, detail=f"Hook ID - {body.id} not found. Update failed, try again"
        ) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return {
        "success": True,
        "message": f"Hook ID {row.id} updated with targetUrl - {row.target_url}",
    }


@app.post("/api/webhooks/list")
def list_hooks(store: SubscriptionStore = Depends(get_store), _=Depends(require_auth)):
    try:
        rows = store.list()
    except LoadError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if not rows:
        return {"success": False, "message": "No Hooks found. Try again, after creating one", "data": []}
    return {
        "success": True,
        "message": "Hooks found successfully",
        "data": [row.to_public() for row in rows],
    }


@app.post("/api/webhooks/remove")
def remove_hook(
    body: RemoveBody,
    store: SubscriptionStore = Depends(get_store),
    _=Depends(require_auth),
):
    return {"removed": store.remove(body.id)}


@app.post("/api/webhooks/trigger")
async def trigger_hooks(
    request: Request,
    response: Response,
    payload: Optional[dict[str, Any]] = Body(default=None),
    engine: DispatchEngine = Depends(get_engine),
    _=Depends(require_auth),
):
    event = dict(payload or {})
    if not event.get("ipAddress"):
        event["ipAddress"] = client_key(
            request.headers, request.client.host if request.client else None
        )

    outcome = await trigger(engine, event)
    if isinstance(outcome, ValidationFailed):
        raise HTTPException(status_code=422, detail=outcome.message)
    if isinstance(outcome, LoadFailed):
        raise HTTPException(status_code=503, detail=outcome.message)
    if isinstance(outcome, NoSubscribers):
        raise HTTPException(status_code=404, detail=outcome.message)

    assert isinstance(outcome, Ok)
    result = outcome.result
    if not result.overall_success:
        response.status_code = 502
    return {
        "success": result.overall_success,
        "message": result.message,
        "data": [o.model_dump() for o in result.outcomes],
    }

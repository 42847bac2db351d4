"""
Mutating admission webhook server.

Receives AdmissionReview requests for pods and answers with an allow/deny decision plus an optional
JSON patch that adds the sidecar. The engine is built once by `run()` (or by tests) and handed to
`create_app`; there is no module-level engine.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from sidecar_injector.core.errors import EngineNotReadyError, EngineStateError, ReadinessTimeoutError
from sidecar_injector.core.models import AdmissionReview
from sidecar_injector.service.engine import EngineState, InjectorEngine

logger = logging.getLogger(__name__)

_MAX_READY_WAIT_SECONDS = 10.0


def initialize_with_retry(
    engine: InjectorEngine,
    *,
    retry_seconds: float,
    stop: Optional[threading.Event] = None,
) -> bool:
    """
    Call `engine.initialize()` until it succeeds (or `stop` is set).

    Returns True once the engine is READY.
    """
    stop = stop or threading.Event()
    attempt = 0
    while not stop.is_set():
        attempt += 1
        try:
            engine.initialize()
            return True
        except EngineStateError:
            return engine.state is EngineState.READY
        except Exception as e:
            logger.warning("Injector initialization attempt %d failed: %s (retrying in %.1fs)", attempt, e, retry_seconds)
        stop.wait(retry_seconds)
    return False


def create_app(engine: InjectorEngine, *, initialize_on_startup: bool = True) -> FastAPI:
    app = FastAPI(title="Sidecar injector webhook")
    app.state.engine = engine
    stop = threading.Event()

    @app.on_event("startup")
    def _startup_initialize_engine() -> None:
        """
        Warm the engine in the background so /healthz answers immediately and /readyz
        reports 503 until trusted UIDs are resolved.
        """
        if not initialize_on_startup or engine.state is EngineState.READY:
            return
        t = threading.Thread(
            target=initialize_with_retry,
            args=(engine,),
            kwargs={"retry_seconds": engine.config.init_retry_seconds, "stop": stop},
            name="injector-init",
            daemon=True,
        )
        t.start()

    @app.on_event("shutdown")
    def _shutdown_stop_initialization() -> None:
        stop.set()

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming HTTP requests."""
        start_time = time.time()
        try:
            response = await call_next(request)
            process_time = time.time() - start_time
            logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
            return response
        except Exception as e:
            process_time = time.time() - start_time
            logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
            raise

    @app.get("/healthz")
    def healthz() -> Dict[str, Any]:
        return {"ok": True}

    @app.get("/readyz")
    def readyz(timeout: float = Query(0.0, ge=0.0)):
        try:
            engine.ready(min(timeout, _MAX_READY_WAIT_SECONDS))
        except ReadinessTimeoutError as e:
            return JSONResponse(status_code=503, content={"ready": False, "detail": str(e)})
        return {"ready": True}

    @app.post("/mutate")
    async def mutate(request: Request):
        content_type = (request.headers.get("content-type") or "").split(";")[0].strip().lower()
        if content_type != "application/json":
            raise HTTPException(status_code=415, detail=f"invalid Content-Type '{content_type}', expect application/json")

        body = await request.body()
        if not body:
            raise HTTPException(status_code=400, detail="empty request body")
        try:
            review = AdmissionReview.model_validate_json(body)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=f"invalid AdmissionReview: {e.error_count()} error(s)")

        try:
            decision = engine.handle_request(review.request)
        except EngineNotReadyError as e:
            raise HTTPException(status_code=503, detail=str(e))

        out = review.respond(decision)
        return JSONResponse(content=out.model_dump(mode="json", by_alias=True, exclude_none=True))

    return app


def run(host: str = "0.0.0.0", port: int = 8443) -> None:
    import uvicorn

    from sidecar_injector.config import load_injector_config
    from sidecar_injector.providers.k8s_provider import get_k8s_provider
    from sidecar_injector.service.engine import InjectorOptions, new_engine

    # Configure logging for the application
    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    cfg = load_injector_config()
    # Construction errors (bad patterns, missing image) are fatal: do not start serving.
    engine = new_engine(InjectorOptions(config=cfg, reader=get_k8s_provider()))
    app = create_app(engine)

    ssl_kwargs: Dict[str, Any] = {}
    if cfg.tls_cert_file and cfg.tls_key_file:
        ssl_kwargs = {"ssl_certfile": cfg.tls_cert_file, "ssl_keyfile": cfg.tls_key_file}
    else:
        logger.warning("TLS_CERT_FILE/TLS_KEY_FILE not set; serving plain HTTP (the API server requires HTTPS)")

    logger.info("Starting injector webhook on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_log_level, **ssl_kwargs)

"""FastAPI application exposing the SurveyCake webhook."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from src.audit.logger import AuditLogger
from src.config import Settings
from src.firstline.client import FirstLineAPI, HttpxFirstLineClient
from src.webhook.surveycake import SurveyCakeSync

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, X-SurveyCake-Signature",
}


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return create_app(Settings.from_env())


def create_app(
    settings: Settings,
    firstline: FirstLineAPI | None = None,
    audit_logger: AuditLogger | None = None,
) -> FastAPI:
    """Create the webhook app.

    ``firstline`` defaults to an httpx-backed client built from settings;
    tests pass a fake. ``audit_logger`` defaults to one built from settings
    when AUDIT_LOG_PATH is configured.
    """
    if firstline is None:
        firstline = HttpxFirstLineClient(
            api_base=settings.firstline_api_base,
            api_key=settings.firstline_api_key,
            verify_tls=settings.verify_tls,
            timeout=settings.timeout,
        )
    if audit_logger is None:
        audit_logger = AuditLogger.from_settings(settings)
    if not settings.surveycake_secret:
        logger.warning("SURVEYCAKE_SECRET not set; webhook signatures are not verified")

    sync = SurveyCakeSync(
        firstline=firstline,
        secret=settings.surveycake_secret,
        audit_logger=audit_logger,
    )
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    async def surveycake_webhook(request: Request) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)

        if request.method != "POST":
            return JSONResponse(
                {"error": "Method Not Allowed"},
                status_code=405,
                headers={**CORS_HEADERS, "Allow": "POST"},
            )

        body = await request.body()
        result = await sync.handle(
            body,
            request.headers,
            source_ip=request.client.host if request.client else None,
        )
        return JSONResponse(result.body, status_code=result.status_code, headers=CORS_HEADERS)

    # No method restriction: unknown verbs must get the same 405 as GET or PUT
    app.add_route("/{path:path}", surveycake_webhook, methods=None, include_in_schema=False)

    return app

"""FastAPI application for the PMS sync subsystem.

This package provides REST endpoints for:
- Receiving signed PMS webhooks and inspecting/replaying deliveries
- Property calendars read from iCalendar feeds
- Sync audit log and health checks
"""

from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum

from pms_sync.config import get_settings
from pms_sync.utils.logging import configure_logging
from pms_sync_api.exceptions import register_exception_handlers
from pms_sync_api.middleware.correlation import CorrelationIdMiddleware
from pms_sync_api.routes.calendar import router as calendar_router
from pms_sync_api.routes.health import router as health_router
from pms_sync_api.routes.sync_logs import router as sync_logs_router
from pms_sync_api.routes.webhooks import router as webhooks_router

configure_logging(get_settings().log_level)

app = FastAPI(
    title="PMS Sync API",
    description="Webhook intake and calendar feeds for external property-management data",
    version="0.1.0",
)

# Configure CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

register_exception_handlers(app)

# Include routers under /api prefix (CloudFront routes /api/* to API Gateway)
app.include_router(health_router, prefix="/api")
app.include_router(webhooks_router, prefix="/api")
app.include_router(calendar_router, prefix="/api")
app.include_router(sync_logs_router, prefix="/api")


@app.get("/api/ping")
async def ping() -> dict[str, Any]:
    """Root health check endpoint at /api/ping."""
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "service": "pms-sync-api",
    }


# Lambda handler - Mangum wraps FastAPI for AWS Lambda + API Gateway
handler = Mangum(app, lifespan="off")


def run_server(host: str = "0.0.0.0", port: int = 8080, reload: bool = True) -> None:
    """Run the FastAPI server with uvicorn.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to listen on (default: 8080)
        reload: Enable hot reload for development (default: True)
    """
    import uvicorn

    if reload:
        # Use string reference for reload mode (uvicorn requirement)
        uvicorn.run(
            "pms_sync_api.main:app",
            host=host,
            port=port,
            reload=True,
            reload_dirs=["api/src", "sync/src"],
        )
    else:
        uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()

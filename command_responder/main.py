"""FastAPI application entry point.

Mounts the Alertmanager webhook router, a liveness probe, and the
Prometheus ``/metrics`` endpoint.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from command_responder import __version__
from command_responder.api.webhook import router as webhook_router
from command_responder.config import get_settings
from command_responder.log import configure_logging

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging on startup and report shutdown."""
    cfg = get_settings()
    configure_logging(cfg.log_level)
    logger.info("startup", version=__version__)
    if not cfg.ssh_known_hosts:
        logger.warning("ssh_host_key_verification_disabled", detail="all remote host keys will be accepted")

    yield

    logger.info("shutdown")


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

app = FastAPI(
    title="command-responder",
    version=__version__,
    description="Run local or SSH commands in response to Alertmanager alerts.",
    lifespan=lifespan,
)

app.include_router(webhook_router)
app.mount("/metrics", make_asgi_app())


@app.get("/health")
async def health() -> dict[str, str]:
    """Return ``{"status": "ok"}`` when the service is alive."""
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Run the application via Uvicorn when invoked as ``python -m command_responder.main``."""
    import uvicorn

    cfg = get_settings()
    uvicorn.run(
        "command_responder.main:app",
        host=cfg.host,
        port=cfg.port,
        log_level=cfg.log_level.lower(),
        reload=False,
    )


if __name__ == "__main__":
    main()

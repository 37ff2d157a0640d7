import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cleaning_quote import __version__
from cleaning_quote.config.settings import get_settings
from cleaning_quote.errors import (
    ConfigurationError,
    InvalidRequestError,
    InvalidTransitionError,
    MutationError,
    QuoteError,
    ResourceNotFoundError,
    TransportError,
)
from cleaning_quote.api.quotes_api import router as quotes_router


logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


configure_logging(get_settings().log_level)

app = FastAPI(
    title="Cleaning Quote API",
    description="Backend API for appliance-cleaning quotes: pricing, share links, confirm, lock and cancel",
    version=__version__,
)

# Share pages are served from another origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(quotes_router)


ERROR_STATUS = [
    (ResourceNotFoundError, 404),
    (InvalidRequestError, 400),
    (InvalidTransitionError, 409),
    (MutationError, 502),
    (TransportError, 502),
    (ConfigurationError, 500),
]


def status_for(exc: QuoteError) -> int:
    for exc_type, status in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status
    return 500


@app.exception_handler(QuoteError)
async def quote_error_handler(request: Request, exc: QuoteError):
    status = status_for(exc)
    body = {"error": str(exc)}
    if isinstance(exc, MutationError):
        body["response"] = exc.detail
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content=body, headers={"Cache-Control": "no-store"})


@app.get("/")
async def root():
    return {"status": "online", "message": "Cleaning Quote API Active"}


@app.get("/system/status")
async def get_status():
    from cleaning_quote.api.state import get_quote_service

    settings = get_settings()
    service = get_quote_service()
    return {
        "engine_active": True,
        "rules_loaded": service.engine.rule_matcher.loaded,
        "rules_count": len(service.engine.rule_matcher.rules),
        "storage_backend": settings.storage_backend,
        "cloudinary_configured": settings.cloudinary_configured,
        "github_configured": settings.github_configured,
        "email_configured": settings.email_configured,
    }

import importlib
import logging
import sys
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

logger = logging.getLogger(__name__)

# Make `companion.*` importable when uvicorn runs from inside companion/.
_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from companion import config  # noqa: E402
from companion.errors import CompanionError, PersistenceError, UpstreamError  # noqa: E402

app = FastAPI(
    title="Bonk Language Companion",
    description="Text correction, tutor chat and gamified progress for language learners",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_STATUS_BY_ERROR = {
    UpstreamError: 500,
    PersistenceError: 503,
}


@app.exception_handler(CompanionError)
async def companion_error_handler(request: Request, exc: CompanionError):
    """Turn any uncaught CompanionError into an {"error": ...} payload."""
    status = next(
        (code for kind, code in _STATUS_BY_ERROR.items() if isinstance(exc, kind)), 400
    )
    logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(status_code=status, content={"error": str(exc)})


@app.get("/health", response_class=PlainTextResponse)
async def health_check():
    """Health check endpoint."""
    return "OK"


_ROUTERS = (
    ("companion.routes.ai", "AI"),
    ("companion.routes.session", "session"),
    ("companion.routes.conversation", "conversation"),
)


def _mount_routes() -> None:
    # A router that fails to import is logged and skipped so the rest still serve.
    for module_name, label in _ROUTERS:
        try:
            module = importlib.import_module(module_name)
            app.include_router(module.router)
        except Exception as exc:
            logger.warning("Failed to mount %s routes: %s", label, exc)


_mount_routes()
logger.info("Companion API ready (mock_mode=%s)", config.MOCK_MODE)

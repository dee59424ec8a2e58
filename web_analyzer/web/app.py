import logging
import sys
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import Body, Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse

from web_analyzer.config import APP_TITLE, DATA_DIR, LOG_LEVEL
from web_analyzer.database import init_db
from web_analyzer.processing.config_resolver import ConfigResolver
from web_analyzer.processing.orchestrator import DEFAULT_HISTORY_LIMIT, AnalysisOrchestrator
from web_analyzer.service import WebAnalyzerService

logger = logging.getLogger(__name__)

# Envelope error codes that are the caller's fault; everything else is a 500
STATUS_BY_CODE = {
    "unauthorized": 401,
    "validation_error": 400,
    "not_found": 404,
    "fetch_not_found": 404,
    "model_not_found": 404,
}


def setup_logging():
    """Configure logging to both console and a daily log file."""
    log_dir = DATA_DIR / "logs"
    log_dir.mkdir(exist_ok=True)
    log_file = log_dir / "web_analyzer_{}.log".format(date.today().isoformat())

    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file),
        ],
    )


def build_service() -> WebAnalyzerService:
    """Wire the resolver and orchestrator; called once per process."""
    resolver = ConfigResolver()
    return WebAnalyzerService(resolver, AnalysisOrchestrator(resolver))


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    app.state.service = build_service()
    logger.info("%s ready", APP_TITLE)
    yield


app = FastAPI(title=APP_TITLE, lifespan=lifespan)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def get_service(request: Request) -> WebAnalyzerService:
    return request.app.state.service


def get_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """The authenticated user id, as forwarded by the identity gateway."""
    if x_user_id and x_user_id.strip():
        return x_user_id.strip()
    return None


def _unauthorized() -> JSONResponse:
    return JSONResponse(
        {"success": False, "error": "Authentication required", "code": "unauthorized"},
        status_code=401,
    )


def _respond(envelope: dict) -> JSONResponse:
    """Translate a service envelope into an HTTP response."""
    if envelope.get("success"):
        return JSONResponse(envelope, status_code=200)
    status = STATUS_BY_CODE.get(envelope.get("code"), 500)
    return JSONResponse(envelope, status_code=status)


# ---------------------------------------------------------------------------
# Analysis routes
# ---------------------------------------------------------------------------

@app.post("/api/analyze")
def analyze(
    payload: dict = Body(...),
    user_id: Optional[str] = Depends(get_user_id),
    service: WebAnalyzerService = Depends(get_service),
):
    """Analyze a web page (or return the cached analysis)."""
    if not user_id:
        return _unauthorized()

    url = payload.get("url")
    if not isinstance(url, str) or not url.strip():
        return _respond({"success": False, "error": "URL is required", "code": "validation_error"})

    return _respond(service.analyze(url, user_id))


@app.get("/api/history")
def history(
    limit: int = Query(DEFAULT_HISTORY_LIMIT),
    user_id: Optional[str] = Depends(get_user_id),
    service: WebAnalyzerService = Depends(get_service),
):
    """Recent analyses for the current user, newest first."""
    if not user_id:
        return _unauthorized()
    return _respond(service.get_history(user_id, limit))


@app.get("/api/analysis/{analysis_id}")
def get_analysis(
    analysis_id: int,
    user_id: Optional[str] = Depends(get_user_id),
    service: WebAnalyzerService = Depends(get_service),
):
    if not user_id:
        return _unauthorized()
    return _respond(service.get_by_id(analysis_id, user_id))


@app.delete("/api/analysis/{analysis_id}")
def delete_analysis(
    analysis_id: int,
    user_id: Optional[str] = Depends(get_user_id),
    service: WebAnalyzerService = Depends(get_service),
):
    if not user_id:
        return _unauthorized()
    return _respond(service.delete_by_id(analysis_id, user_id))


# ---------------------------------------------------------------------------
# AI configuration routes
# ---------------------------------------------------------------------------

@app.get("/api/ai/config")
def get_ai_config(
    user_id: Optional[str] = Depends(get_user_id),
    service: WebAnalyzerService = Depends(get_service),
):
    if not user_id:
        return _unauthorized()
    return _respond(service.get_config(user_id))


@app.put("/api/ai/config")
def update_ai_config(
    payload: dict = Body(...),
    user_id: Optional[str] = Depends(get_user_id),
    service: WebAnalyzerService = Depends(get_service),
):
    """Partially update the current user's AI configuration."""
    if not user_id:
        return _unauthorized()
    return _respond(service.update_config(user_id, payload))


@app.get("/api/ai/models")
def list_models(
    user_id: Optional[str] = Depends(get_user_id),
    service: WebAnalyzerService = Depends(get_service),
):
    if not user_id:
        return _unauthorized()
    return _respond(service.list_models())


@app.get("/api/ai/prompts")
def list_prompts(
    user_id: Optional[str] = Depends(get_user_id),
    service: WebAnalyzerService = Depends(get_service),
):
    if not user_id:
        return _unauthorized()
    return _respond(service.list_prompts())


@app.get("/api/voices")
def list_voices(
    user_id: Optional[str] = Depends(get_user_id),
    service: WebAnalyzerService = Depends(get_service),
):
    if not user_id:
        return _unauthorized()
    return _respond(service.list_voices())


@app.get("/health")
async def health():
    return {
        "success": True,
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn
    setup_logging()
    uvicorn.run("web_analyzer.web.app:app", host="127.0.0.1", port=8000, reload=True)

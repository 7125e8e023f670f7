"""
Ledger Insight HTTP API

    GET  /health
    POST /api/v1/analyze    multipart ledger upload -> full analysis
    POST /api/v1/estimate   prompt text -> token count and KRW cost

Run with: python backend/api.py  (or uvicorn backend.api:app)
"""

import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import APIRouter, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

# Running this file directly puts backend/ first on sys.path; backend.* needs the repo root
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from backend import __version__
from backend.logic.config_manager import get_config_value
from backend.logic.logging_utils import setup_logging, get_logger
from backend.logic.prompt_payloads import estimate_tokens, estimate_cost_krw
from backend.models.api_models import (
    AnalyzeResponse,
    CostEstimateRequest,
    CostEstimateResponse,
    ErrorResponse,
)
from backend.services.analyzer import LedgerAnalyzer
from backend.services.ledger_importer import LedgerImportError

logger = get_logger(__name__)

MAX_UPLOAD_BYTES = 50 * 1024 * 1024
DEV_ORIGINS = ["http://localhost:5173", "http://127.0.0.1:5173", "http://localhost:3000"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    level_name = str(get_config_value("log_level", "INFO")).upper()
    log_file = setup_logging(
        level=getattr(logging, level_name, logging.INFO),
        log_to_file=os.environ.get("LEDGER_LOG_TO_FILE", "").lower() in ("1", "true", "yes"),
    )
    logger.info(f"Ledger Insight API {__version__} starting (log file: {log_file or 'none'})")
    yield
    logger.info("Ledger Insight API stopped")


def allowed_origins() -> List[str]:
    """CORS origins: comma-separated CORS_ALLOWED_ORIGINS, else local dev servers."""
    configured = [o.strip() for o in os.environ.get("CORS_ALLOWED_ORIGINS", "").split(",")]
    return [o for o in configured if o] or DEV_ORIGINS


app = FastAPI(
    title="Ledger Insight API",
    description="General ledger ingestion, anomaly screening and account relationship analysis",
    version=__version__,
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

v1 = APIRouter(prefix="/api/v1", tags=["v1"])
analyzer = LedgerAnalyzer()


def error(status_code: int, code: str, message: str, details: Optional[Dict] = None) -> HTTPException:
    """HTTPException whose detail follows ErrorResponse ({error, message, details})."""
    body = ErrorResponse(error=code, message=message, details=details)
    return HTTPException(status_code=status_code, detail=body.model_dump(exclude_none=True))


# ==============================================================================
# ROUTES
# ==============================================================================

@app.get("/health")
def health():
    return {"status": "ok", "version": __version__}


@v1.post(
    "/analyze",
    response_model=AnalyzeResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def analyze_ledger(
    file: UploadFile = File(...),
    sample_size: Optional[int] = Query(None, ge=1, description="Override the tiered sample size"),
):
    """
    Analyze an uploaded ledger (.xlsx/.xlsm/.csv).

    Returns resolved columns and anomalies per sheet, the Benford report,
    the heaviest account relations, a bounded transaction sample, the
    weekend/holiday screening and the vendor checks.
    """
    content = file.file.read()
    if not content:
        raise error(400, "EMPTY_FILE", "The uploaded file is empty.")
    if len(content) > MAX_UPLOAD_BYTES:
        raise error(400, "FILE_TOO_LARGE", "The uploaded file exceeds the 50MB limit.",
                    {"size": len(content), "limit": MAX_UPLOAD_BYTES})

    try:
        analysis = analyzer.analyze_file(content, filename=file.filename or "", sample_size=sample_size)
    except LedgerImportError as e:
        logger.warning(f"Rejected upload '{file.filename}': {e}")
        raise error(400, "INVALID_LEDGER_FILE", str(e))
    except Exception:
        # internals stay in the log, not in the response
        logger.exception(f"Analysis failed for '{file.filename}'")
        raise error(500, "ANALYSIS_FAILED", "Ledger analysis failed. Check the file layout and try again.")

    return analysis.to_dict()


@v1.post("/estimate", response_model=CostEstimateResponse)
def estimate_cost(request: CostEstimateRequest):
    """Token count and KRW cost estimate for an AI prompt."""
    input_tokens = estimate_tokens(request.text)
    return CostEstimateResponse(
        input_tokens=input_tokens,
        output_tokens=request.output_tokens,
        model=request.model,
        cost_krw=estimate_cost_krw(input_tokens, request.output_tokens, request.model),
    )


app.include_router(v1)


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=int(get_config_value("server_port", 8000)))

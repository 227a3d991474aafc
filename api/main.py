from __future__ import annotations

import json
import os
import threading
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from core.session_analysis import InvalidPreconditionError
from domain import IterationContext, IterationTiming, UserFeedback
from iteration_service import IterationService
from logger import get_logger, log_exception
from settings import Settings

logger = get_logger('api.main')


# Standardized error response utilities
class APIError(Exception):
    """Custom exception for API errors with standardized format"""
    def __init__(self, message: str, status_code: int = 500, error_code: str = None, details: Dict[str, Any] = None):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code or f"ERROR_{status_code}"
        self.details = details or {}
        super().__init__(self.message)


def _make_json_safe(obj: Any) -> Any:
    """Recursively convert objects to JSON-serializable forms."""
    try:
        json.dumps(obj)
        return obj
    except TypeError:
        pass
    if isinstance(obj, BaseException):
        return str(obj)
    if isinstance(obj, dict):
        return {str(_make_json_safe(k)): _make_json_safe(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [_make_json_safe(v) for v in obj]
    return repr(obj)


def create_error_response(message: str, status_code: int = 500, error_code: str = None, details: Dict[str, Any] = None) -> JSONResponse:
    """Create a standardized error response (always JSON-serializable)."""
    error_data = {
        "error": message,
        "status_code": status_code,
        "error_code": error_code or f"ERROR_{status_code}",
        "timestamp": datetime.now().isoformat(),
        "details": details or {}
    }
    return JSONResponse(_make_json_safe(error_data), status_code=status_code)


_service: Optional[IterationService] = None
_service_lock = threading.Lock()


def get_service() -> IterationService:
    """Lazily build the process-wide service from environment settings."""
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = IterationService(Settings.load())
                logger.info("Iteration service initialized")
    return _service


app = FastAPI(title="Iteration Analysis API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handlers for standardized errors
@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    logger.warning(f"APIError: {exc.message}")
    return create_error_response(exc.message, exc.status_code, exc.error_code, exc.details)


@app.exception_handler(InvalidPreconditionError)
async def precondition_error_handler(request: Request, exc: InvalidPreconditionError):
    logger.warning(f"Invalid precondition: {exc}")
    return create_error_response(str(exc), 422, "INVALID_PRECONDITION")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return create_error_response("Validation error", 422, "REQUEST_VALIDATION_ERROR", {"detail": exc.errors()})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log_exception("UNHANDLED_API_ERROR", exc)
    return create_error_response("Internal server error", 500, "INTERNAL_ERROR")


# Pydantic models
class TimingModel(BaseModel):
    requestTime: Optional[float] = None
    responseTime: Optional[float] = None


class IterationRequest(BaseModel):
    prompt: str
    output: str
    contentType: str = "blog"
    userBrief: str = ""
    timing: Optional[TimingModel] = None


class AlternativeRequest(IterationRequest):
    baseIterationId: str


class FeedbackRequest(BaseModel):
    type: str  # accept | reject | refine
    rating: Optional[int] = None
    refinementRequest: Optional[str] = None
    quickFeedback: List[str] = []
    acceptanceLevel: Optional[str] = None


def _timing(model: Optional[TimingModel]) -> IterationTiming:
    now = time.time()
    request_time = model.requestTime if model and model.requestTime is not None else now
    response_time = model.responseTime if model and model.responseTime is not None else max(now, request_time)
    return IterationTiming(request_time=request_time, response_time=response_time)


def _context(session_id: str, req: IterationRequest) -> IterationContext:
    return IterationContext(session_id=session_id, content_type=req.contentType, user_brief=req.userBrief)


def _not_found(what: str, **details: Any) -> APIError:
    return APIError(f"{what} not found", 404, "NOT_FOUND", details)


@app.get("/health")
async def health(service: IterationService = Depends(get_service)):
    return {"status": "ok", "timestamp": time.time(), **service.describe()}


@app.post("/sessions/{session_id}/iterations")
async def create_iteration(session_id: str, req: IterationRequest, service: IterationService = Depends(get_service)):
    try:
        iteration = service.create_iteration(_context(session_id, req), req.prompt, req.output, _timing(req.timing))
    except ValueError as e:
        raise APIError(str(e), 422, "INVALID_TIMING")
    return iteration.to_dict()


@app.post("/sessions/{session_id}/alternatives")
async def create_alternative(session_id: str, req: AlternativeRequest, service: IterationService = Depends(get_service)):
    try:
        iteration = service.create_alternative(session_id, req.baseIterationId, _context(session_id, req),
                                               req.prompt, req.output, _timing(req.timing))
    except ValueError as e:
        raise APIError(str(e), 422, "INVALID_TIMING")
    if iteration is None:
        raise _not_found("Base iteration", sessionId=session_id, iterationId=req.baseIterationId)
    return iteration.to_dict()


@app.post("/sessions/{session_id}/iterations/{iteration_id}/feedback")
async def add_feedback(session_id: str, iteration_id: str, req: FeedbackRequest,
                       service: IterationService = Depends(get_service)):
    try:
        feedback = UserFeedback(
            type=req.type,
            rating=req.rating,
            refinement_request=req.refinementRequest,
            quick_feedback=list(req.quickFeedback),
            acceptance_level=req.acceptanceLevel,
        )
    except ValueError as e:
        raise APIError(str(e), 422, "INVALID_FEEDBACK")
    iteration = service.add_feedback(session_id, iteration_id, feedback)
    if iteration is None:
        raise _not_found("Iteration", sessionId=session_id, iterationId=iteration_id)
    return iteration.to_dict()


@app.get("/sessions/{session_id}/iterations")
async def get_history(session_id: str, service: IterationService = Depends(get_service)):
    history = service.get_history(session_id)
    return {"sessionId": session_id, "count": len(history), "iterations": [it.to_dict() for it in history]}


@app.get("/sessions/{session_id}/latest")
async def get_latest(session_id: str, service: IterationService = Depends(get_service)):
    latest = service.get_latest(session_id)
    if latest is None:
        raise _not_found("Session", sessionId=session_id)
    return latest.to_dict()


@app.get("/sessions/{session_id}/tree")
async def get_version_tree(session_id: str, service: IterationService = Depends(get_service)):
    tree = service.get_version_tree(session_id)
    if tree is None:
        raise _not_found("Session", sessionId=session_id)
    return tree.to_dict()


@app.get("/sessions/{session_id}/iterations/{iteration_id}/alternatives")
async def get_alternatives(session_id: str, iteration_id: str, service: IterationService = Depends(get_service)):
    return {
        "baseIterationId": iteration_id,
        "alternatives": [it.to_dict() for it in service.get_alternatives(session_id, iteration_id)],
    }


@app.get("/sessions/{session_id}/compare")
async def compare_iterations(session_id: str, from_id: str = Query(..., alias="from"),
                             to_id: str = Query(..., alias="to"), service: IterationService = Depends(get_service)):
    result = service.compare_iterations(session_id, from_id, to_id)
    if result is None:
        raise _not_found("Iteration", sessionId=session_id, fromId=from_id, toId=to_id)
    return result.to_dict()


@app.get("/sessions/{session_id}/iterations/{iteration_id}/quality")
async def get_quality(session_id: str, iteration_id: str, service: IterationService = Depends(get_service)):
    metric = service.get_quality_metric(session_id, iteration_id)
    if metric is None:
        raise _not_found("Iteration", sessionId=session_id, iterationId=iteration_id)
    return metric.to_dict()


@app.get("/sessions/{session_id}/analysis")
async def analyze_session(session_id: str, service: IterationService = Depends(get_service)):
    return service.analyze_session(session_id).to_dict()


@app.get("/sessions/{session_id}/side-by-side")
async def side_by_side(session_id: str, ids: Optional[List[str]] = Query(None),
                       service: IterationService = Depends(get_service)):
    return service.side_by_side(session_id, ids).to_dict()


@app.get("/sessions/{session_id}/stats")
async def get_stats(session_id: str, service: IterationService = Depends(get_service)):
    return {"sessionId": session_id, **service.get_iteration_stats(session_id)}


@app.delete("/sessions/{session_id}")
async def clear_session(session_id: str, service: IterationService = Depends(get_service)):
    return {"sessionId": session_id, "cleared": service.clear_session(session_id)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=bool(os.getenv("DEBUG")))

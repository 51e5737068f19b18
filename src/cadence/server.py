import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from cadence.application.config import resolve_config
from cadence.application.factory import get_scheduling_service
from cadence.application.grading import attempt_to_grade
from cadence.application.optimizer import optimize
from cadence.application.scheduling_service import SchedulingService
from cadence.consts import VERSION
from cadence.domain.constants import (
    DEFAULT_LEARNING_RATE,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_MIN_ERROR,
    HISTORY_FETCH_LIMIT,
    MAX_OPTIMIZE_ITERATIONS,
)
from cadence.domain.exceptions import CadenceError, HistoryStoreError
from cadence.domain.models import Attempt
from cadence.domain.parameters import DEFAULT_PARAMETERS, FsrsParameters
from cadence.interface.history_file import HistoryFileError, record_from_mapping

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("cadence.server")

_service: SchedulingService | None = None


def get_service() -> SchedulingService:
    """Process-wide scheduling service, built from the resolved config on first use."""
    global _service
    if _service is None:
        _service = get_scheduling_service(resolve_config())
    return _service


def set_service(service: SchedulingService | None) -> None:
    global _service
    _service = service


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Cadence Server v{VERSION} starting up...")
    yield
    # Shutdown
    logger.info("Cadence Server shutting down...")


app = FastAPI(
    title="Cadence Server",
    description="Review scheduling for practice questions.",
    version=VERSION,
    lifespan=lifespan,
)


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


start_time = time.time()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


class AttemptModel(BaseModel):
    correct: bool = False
    time_ms: int | None = None
    score: float | None = None

    def to_attempt(self) -> Attempt:
        return Attempt(correct=self.correct, time_ms=self.time_ms, score=self.score)


class GradeResponse(BaseModel):
    grade: int
    name: str


@app.post("/grade", response_model=GradeResponse)
async def grade_attempt(req: AttemptModel):
    g = attempt_to_grade(req.to_attempt())
    return GradeResponse(grade=int(g), name=g.name)


class RecordAttemptRequest(AttemptModel):
    user_id: str
    question_id: str
    reviewed_at: datetime | None = None


class ScheduledStateResponse(BaseModel):
    user_id: str
    question_id: str
    grade: int
    stability: float
    difficulty: float
    repetitions: int
    interval_days: float
    stored_interval_days: int
    next_due: datetime
    reviewed_at: datetime
    parameters_source: str
    fallbacks: list[str]


@app.post("/attempts", response_model=ScheduledStateResponse)
async def record_attempt(req: RecordAttemptRequest):
    """Record an attempt and return the state persisted for it."""
    logger.info(f"Attempt recorded via API: user={req.user_id} question={req.question_id}")
    try:
        state = await get_service().record_attempt(
            req.user_id, req.question_id, req.to_attempt(), now=req.reviewed_at
        )
    except HistoryStoreError as e:
        logger.error(f"History store failed: {e}", exc_info=True)
        raise HTTPException(status_code=503, detail=str(e)) from e
    except CadenceError as e:
        logger.error(f"Scheduling failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e

    return ScheduledStateResponse(
        user_id=state.user_id,
        question_id=state.question_id,
        grade=state.grade,
        stability=state.stability,
        difficulty=state.difficulty,
        repetitions=state.repetitions,
        interval_days=state.interval_days,
        stored_interval_days=state.stored_interval_days,
        next_due=state.next_due,
        reviewed_at=state.reviewed_at,
        parameters_source=state.parameters_source,
        fallbacks=list(state.fallbacks),
    )


class OptimizeRequest(BaseModel):
    records: list[dict] = Field(max_length=HISTORY_FETCH_LIMIT)
    # If None, start from the built-in defaults.
    initial_parameters: dict[str, float] | None = None
    max_iterations: int = Field(default=DEFAULT_MAX_ITERATIONS, ge=0, le=MAX_OPTIMIZE_ITERATIONS)
    learning_rate: float = Field(default=DEFAULT_LEARNING_RATE, gt=0)
    min_error: float = Field(default=DEFAULT_MIN_ERROR, ge=0)


class OptimizeResponse(BaseModel):
    parameters: dict[str, float]
    error: float
    iterations: int


@app.post("/optimize", response_model=OptimizeResponse)
async def optimize_parameters(req: OptimizeRequest):
    try:
        records = [record_from_mapping(r) for r in req.records]
        initial = (
            FsrsParameters.from_dict(req.initial_parameters)
            if req.initial_parameters
            else DEFAULT_PARAMETERS
        )
    except (HistoryFileError, KeyError, TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid request: {e}") from None

    # CPU-bound; run off the event loop.
    result = await asyncio.to_thread(
        optimize, records, initial, req.max_iterations, req.learning_rate, req.min_error
    )
    logger.info(f"Optimized on {len(records)} records: iterations={result.iterations}")

    return OptimizeResponse(
        parameters=result.parameters.to_dict(), error=result.error, iterations=result.iterations
    )

"""
FastAPI application for the EmoCaptcha backend
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import config
from .models.data_models import ScoringEngine
from .models.schemas import (
    CaptureRequest,
    EvaluateRequest,
    ScoreRequest,
    SessionCreateRequest,
    VerifyRequest,
)
from .services import (
    BlendshapeExtractor,
    CaptureInProgressError,
    ChallengeEngine,
    OracleError,
    OracleScorer,
    SessionRegistry,
    VerificationService,
    evaluate_on_device,
    is_pass,
)

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


def _engine_from(value: Optional[str], default: ScoringEngine) -> ScoringEngine:
    if not value:
        return default
    return ScoringEngine(value.lower())


def _default_engine(value: Optional[str]) -> ScoringEngine:
    try:
        return _engine_from(value, ScoringEngine.ORACLE)
    except ValueError:
        logger.warning(f"Unknown DEFAULT_ENGINE {value!r}; using 'oracle'")
        return ScoringEngine.ORACLE


challenge_engine = ChallengeEngine()
verification_service = VerificationService(
    oracle=OracleScorer(),
    extractor=BlendshapeExtractor(config.MEDIAPIPE_MODEL_PATH),
    default_engine=_default_engine(config.DEFAULT_ENGINE),
)
session_registry = SessionRegistry(verification_service)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"EmoCaptcha API starting (default engine: {verification_service.default_engine.value})")
    yield
    verification_service.extractor.close()
    logger.info("EmoCaptcha API stopped")


app = FastAPI(title="EmoCaptcha API", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_challenge_engine() -> ChallengeEngine:
    return challenge_engine


def get_verification_service() -> VerificationService:
    return verification_service


def get_session_registry() -> SessionRegistry:
    return session_registry


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


@app.exception_handler(RequestValidationError)
async def invalid_payload(request: Request, exc: RequestValidationError):
    fields = [".".join(str(p) for p in e.get("loc", ())) for e in exc.errors()]
    logger.info(f"Rejected payload on {request.url.path}: {fields}")
    return _error("Invalid payload", 400)


@app.get("/")
async def root():
    return {"message": "EmoCaptcha API", "status": "running", "version": __version__}


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "services": {
            "api": "operational",
            "oracle": "configured" if config.oracle_enabled() else "not_configured",
        },
    }


@app.get("/api/challenges")
async def list_challenges(engine: ChallengeEngine = Depends(get_challenge_engine)):
    return {"challenges": [c.to_dict() for c in engine.catalog]}


@app.get("/api/challenges/random")
async def random_challenge(
    exclude: Optional[str] = None,
    engine: ChallengeEngine = Depends(get_challenge_engine)
):
    """Random challenge; with ``exclude`` it is guaranteed to differ (shuffle)"""
    current = engine.get(exclude)
    challenge = engine.pick_different(current) if current else engine.pick_random()
    return challenge.to_dict()


@app.post("/api/score")
async def score(
    body: ScoreRequest,
    engine: ChallengeEngine = Depends(get_challenge_engine),
    service: VerificationService = Depends(get_verification_service)
):
    """Score a still with the oracle only (no fallback)"""
    if not body.image_data_url or not body.challenge or not body.challenge.id or not body.challenge.label:
        return _error("Invalid payload", 400)
    challenge = engine.get(body.challenge.id)
    if challenge is None:
        return _error("Invalid payload", 400)

    try:
        result = await service.oracle.score(body.image_data_url, challenge)
    except OracleError as e:
        logger.error(f"Oracle scoring failed: {e}")
        return _error(str(e) or "Failed to score image", 500)
    return result.to_dict()


@app.post("/api/evaluate")
async def evaluate(body: EvaluateRequest, engine: ChallengeEngine = Depends(get_challenge_engine)):
    """Score a blendshape vector on-device"""
    challenge = engine.get(body.challenge_id)
    if challenge is None:
        return _error(f"Unknown challenge: {body.challenge_id}", 400)
    result = evaluate_on_device(challenge, body.action_units)
    return {**result.to_dict(), "passed": is_pass(result)}


@app.post("/api/verify")
async def verify(
    body: VerifyRequest,
    engine: ChallengeEngine = Depends(get_challenge_engine),
    service: VerificationService = Depends(get_verification_service)
):
    """Unified verdict: oracle first, on-device fallback"""
    challenge = engine.get(body.challenge_id)
    if challenge is None:
        return _error(f"Unknown challenge: {body.challenge_id}", 400)
    if not body.image_data_url and body.action_units is None:
        return _error("Invalid payload", 400)
    try:
        scoring_engine = _engine_from(body.engine, service.default_engine)
    except ValueError:
        return _error(f"Unknown engine: {body.engine}", 400)

    verdict = await service.verify(
        challenge,
        image_data_url=body.image_data_url,
        engine=scoring_engine,
        action_units=body.action_units,
    )
    return verdict.to_dict()


def _session_payload(session) -> dict:
    return {
        "sessionId": session.session_id,
        "challenge": session.active_challenge.to_dict(),
        "engine": session.engine.value,
        "verified": session.verified,
    }


@app.post("/api/sessions")
async def create_session(
    body: Optional[SessionCreateRequest] = None,
    registry: SessionRegistry = Depends(get_session_registry)
):
    try:
        scoring_engine = _engine_from(body.engine if body else None, registry.service.default_engine)
    except ValueError:
        return _error(f"Unknown engine: {body.engine}", 400)
    session = registry.create(engine=scoring_engine)
    logger.info(f"Session {session.session_id} started with '{session.active_challenge.id.value}'")
    return _session_payload(session)


@app.post("/api/sessions/{session_id}/shuffle")
async def shuffle_session(session_id: str, registry: SessionRegistry = Depends(get_session_registry)):
    session = registry.get(session_id)
    if session is None:
        return _error("Session not found", 404)
    session.shuffle()
    return _session_payload(session)


@app.post("/api/sessions/{session_id}/capture")
async def capture(
    session_id: str,
    body: CaptureRequest,
    registry: SessionRegistry = Depends(get_session_registry)
):
    session = registry.get(session_id)
    if session is None:
        return _error("Session not found", 404)
    if not body.image_data_url and body.action_units is None:
        return _error("Invalid payload", 400)
    try:
        verdict = await session.capture(body.image_data_url, body.action_units)
    except CaptureInProgressError as e:
        return _error(str(e), 409)
    return {**_session_payload(session), "verdict": verdict.to_dict()}


@app.delete("/api/sessions/{session_id}")
async def close_session(session_id: str, registry: SessionRegistry = Depends(get_session_registry)):
    if not registry.close(session_id):
        return _error("Session not found", 404)
    return {"sessionId": session_id, "closed": True}


def run() -> None:
    import uvicorn

    uvicorn.run("emocaptcha.main:app", host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    run()

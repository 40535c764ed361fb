"""
Verification service: one captured still in, one accept/reject verdict out.

The oracle path is tried first when selected. Any oracle failure degrades
silently to the on-device evaluator on the same still, and the caller only
ever sees a normal verdict.
"""
import logging
import time
import uuid
from typing import Dict, Optional

from fastapi.concurrency import run_in_threadpool

from ..config import config
from ..models.data_models import (
    THRESHOLDS,
    ActionUnitVector,
    Challenge,
    MatchResult,
    ScoringEngine,
    Verdict,
)
from .blendshape_extractor import BlendshapeExtractor
from .challenge_engine import ChallengeEngine
from .expression_evaluator import evaluate_on_device
from .oracle_scorer import OracleError, OracleScorer

logger = logging.getLogger(__name__)


class CaptureInProgressError(RuntimeError):
    """A capture was submitted while the previous one is still being scored"""


def is_pass(result: MatchResult) -> bool:
    """A result passes when it matched or is confident enough on its own"""
    return result.matched or result.confidence >= THRESHOLDS.instant_pass


class VerificationService:
    """
    Combines the oracle and on-device scoring paths.

    The scoring engine is passed in per call; the service keeps no
    per-user state.
    """

    def __init__(
        self,
        oracle: Optional[OracleScorer] = None,
        extractor: Optional[BlendshapeExtractor] = None,
        default_engine: ScoringEngine = ScoringEngine.ORACLE
    ):
        self.oracle = oracle or OracleScorer()
        self.extractor = extractor or BlendshapeExtractor()
        self.default_engine = default_engine

    def evaluate_locally(
        self,
        challenge: Challenge,
        image_data_url: Optional[str] = None,
        action_units: Optional[ActionUnitVector] = None
    ) -> MatchResult:
        """
        Score a still (or a ready-made action-unit vector) on-device.

        Supplied action units win over the image.
        """
        if action_units is None:
            action_units = self.extractor.extract_from_data_url(image_data_url) if image_data_url else {}
        return evaluate_on_device(challenge, action_units)

    async def verify(
        self,
        challenge: Challenge,
        image_data_url: Optional[str] = None,
        engine: Optional[ScoringEngine] = None,
        action_units: Optional[ActionUnitVector] = None
    ) -> Verdict:
        """
        Produce the unified verdict for one capture.

        Args:
            challenge: The active challenge
            image_data_url: Captured still as a base64 data URL
            engine: Scoring path to try first (defaults to the service default)
            action_units: Blendshapes already extracted by the client

        Returns:
            Verdict
        """
        engine = engine or self.default_engine
        fell_back = False

        if engine == ScoringEngine.ORACLE and image_data_url:
            try:
                oracle_result = await self.oracle.score(image_data_url, challenge)
            except OracleError as e:
                logger.warning(
                    f"Oracle unavailable for '{challenge.id.value}', "
                    f"falling back to on-device evaluation: {e}"
                )
                fell_back = True
            else:
                result = MatchResult(
                    matched=oracle_result.matched,
                    confidence=oracle_result.confidence
                )
                verdict = Verdict(
                    result=result,
                    passed=is_pass(result),
                    source=ScoringEngine.ORACLE,
                    reasons=oracle_result.reasons,
                    model=oracle_result.model,
                )
                logger.info(f"Verdict for '{challenge.id.value}' via oracle: passed={verdict.passed}")
                return verdict

        # Landmark detection is CPU-bound; keep it off the event loop
        result = await run_in_threadpool(self.evaluate_locally, challenge, image_data_url, action_units)
        verdict = Verdict(
            result=result,
            passed=is_pass(result),
            source=ScoringEngine.ON_DEVICE,
            fell_back=fell_back,
        )
        logger.info(
            f"Verdict for '{challenge.id.value}' on-device: passed={verdict.passed}, "
            f"confidence={result.confidence:.3f}"
        )
        return verdict


class CaptchaSession:
    """
    One widget session: a single active challenge and at most one capture
    being scored at a time.
    """

    def __init__(
        self,
        service: VerificationService,
        challenge_engine: Optional[ChallengeEngine] = None,
        engine: Optional[ScoringEngine] = None
    ):
        self.session_id = str(uuid.uuid4())
        self.created_at = time.time()
        self.service = service
        self.challenge_engine = challenge_engine or ChallengeEngine()
        self.engine = engine or service.default_engine
        self.active_challenge = self.challenge_engine.pick_random()
        self.analyzing = False
        self.verified = False
        self.last_verdict: Optional[Verdict] = None

    def shuffle(self) -> Challenge:
        """Switch to a different challenge and forget the previous result"""
        self.active_challenge = self.challenge_engine.pick_different(self.active_challenge)
        self.retake()
        return self.active_challenge

    def retake(self) -> None:
        self.verified = False
        self.last_verdict = None

    async def capture(
        self,
        image_data_url: Optional[str] = None,
        action_units: Optional[ActionUnitVector] = None
    ) -> Verdict:
        """
        Score one captured still against the active challenge.

        Raises:
            CaptureInProgressError: A previous capture is still being scored
        """
        if self.analyzing:
            raise CaptureInProgressError(f"Session {self.session_id} is already analyzing a capture")

        self.analyzing = True
        try:
            verdict = await self.service.verify(
                self.active_challenge,
                image_data_url=image_data_url,
                engine=self.engine,
                action_units=action_units,
            )
        finally:
            self.analyzing = False

        self.last_verdict = verdict
        self.verified = verdict.passed
        return verdict


class SessionRegistry:
    """
    In-memory sessions for the HTTP layer; nothing is persisted.

    Sessions expire ``ttl_seconds`` after creation and are evicted lazily on
    the next ``create`` or ``get``.
    """

    def __init__(self, service: VerificationService, ttl_seconds: Optional[float] = None):
        self.service = service
        self.ttl_seconds = config.SESSION_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._sessions: Dict[str, CaptchaSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def _is_expired(self, session: CaptchaSession, now: float) -> bool:
        return now - session.created_at >= self.ttl_seconds

    def evict_expired(self) -> int:
        """Drop expired sessions; returns how many were removed"""
        now = time.time()
        expired = [sid for sid, s in self._sessions.items() if self._is_expired(s, now)]
        for session_id in expired:
            del self._sessions[session_id]
        if expired:
            logger.info(f"Evicted {len(expired)} expired session(s)")
        return len(expired)

    def create(self, engine: Optional[ScoringEngine] = None) -> CaptchaSession:
        self.evict_expired()
        session = CaptchaSession(self.service, engine=engine)
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> Optional[CaptchaSession]:
        session = self._sessions.get(session_id)
        if session is not None and self._is_expired(session, time.time()):
            del self._sessions[session_id]
            logger.info(f"Session {session_id} expired")
            return None
        return session

    def close(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

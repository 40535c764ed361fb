"""
Services for challenge selection, expression scoring and verification
"""
from .blendshape_extractor import BlendshapeExtractor
from .challenge_engine import ChallengeEngine
from .confidence_stabilizer import stabilize_oracle_confidence
from .expression_evaluator import evaluate_on_device
from .oracle_scorer import OracleError, OracleScorer, OracleTransportError
from .verification_service import (
    CaptchaSession,
    CaptureInProgressError,
    SessionRegistry,
    VerificationService,
    is_pass,
)

__all__ = [
    "BlendshapeExtractor",
    "CaptchaSession",
    "CaptureInProgressError",
    "ChallengeEngine",
    "OracleError",
    "OracleScorer",
    "OracleTransportError",
    "SessionRegistry",
    "VerificationService",
    "evaluate_on_device",
    "is_pass",
    "stabilize_oracle_confidence",
]

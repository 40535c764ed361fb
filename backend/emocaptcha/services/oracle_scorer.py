"""
Scoring oracle client.

Sends the captured still and the target challenge to an OpenAI-compatible
vision model that must answer with ``{match_score, reasons}`` under a strict
JSON schema, then turns that answer into an OracleScoreResponse. Every field of
the answer is coerced before use.
"""
import json
import logging
import math
import re
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI, OpenAIError

from ..config import config
from ..models.data_models import Challenge, OracleScoreResponse
from .confidence_stabilizer import stabilize_oracle_confidence

logger = logging.getLogger(__name__)

MAX_REASONS = 3

RESPONSE_FORMAT = {
    "type": "json_schema",
    "json_schema": {
        "name": "emo_captcha_score",
        "schema": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "match_score": {"type": "number"},
                "reasons": {
                    "type": "array",
                    "items": {"type": "string"},
                    "minItems": 1,
                    "maxItems": MAX_REASONS,
                },
            },
            "required": ["match_score", "reasons"],
        },
        "strict": True,
    },
}

_REASON_SPLIT = re.compile(r"[\n;•\-]+|\.\s+")


class OracleError(Exception):
    """The oracle could not produce a score"""


class OracleTransportError(OracleError):
    """Network, HTTP or SDK failure while calling the oracle"""


def build_prompt(challenge: Challenge) -> str:
    """System instruction sent with every scoring request"""
    return (
        "You are a strict facial expression evaluator. Given a selfie image and a target "
        "instruction, score how well the expression MATCHES the TARGET EMOJI.\n\n"
        "Return a JSON object with:\n"
        "- match_score: a real number in [0,1] (3 decimals ok) where 1.0 means \"clearly "
        "matches target\" and 0.0 means \"clearly NOT the target\". Example: if target is "
        "\"Smile\" but the face looks angry, match_score must be low (<= 0.30).\n"
        "- reasons: an array (1–3 items) of very short bullet points describing visible "
        "cues, e.g., [\"brows raised\", \"mouth open\"]. Keep each item succinct.\n\n"
        "Do not include any other fields. Be conservative; avoid false positives. "
        f"Target emoji: {challenge.emoji} ({challenge.label})."
    )


def build_messages(image_data_url: str, challenge: Challenge) -> List[Dict[str, Any]]:
    return [
        {"role": "system", "content": build_prompt(challenge)},
        {
            "role": "user",
            "content": [
                {
                    "type": "text",
                    "text": f"Score the match for target emoji {challenge.emoji} ({challenge.label}).",
                },
                {"type": "image_url", "image_url": {"url": image_data_url}},
            ],
        },
    ]


def _coerce_score(value: Any) -> float:
    """Numbers and numeric strings pass; anything else scores 0"""
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        score = float(value)
    elif isinstance(value, str):
        try:
            score = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    return score if math.isfinite(score) else 0.0


def _coerce_reasons(parsed: Dict[str, Any]) -> Optional[List[str]]:
    reasons = parsed.get("reasons")
    if isinstance(reasons, list):
        cleaned = [r.strip() for r in reasons if isinstance(r, str) and r.strip()]
        return cleaned[:MAX_REASONS] or None

    # Older prompts answered with a single free-text "reason"
    reason = parsed.get("reason")
    if isinstance(reason, str) and reason.strip():
        parts = [p.strip() for p in _REASON_SPLIT.split(reason)]
        return [p for p in parts if p][:MAX_REASONS] or None
    return None


def parse_oracle_response(
    raw_text: Optional[str],
    challenge_label: str,
    model: Optional[str] = None,
    pass_threshold: Optional[float] = None
) -> OracleScoreResponse:
    """
    Turn the oracle's raw answer into an OracleScoreResponse.

    Never raises: malformed JSON reads as an empty answer (score 0, no
    reasons).

    Args:
        raw_text: Message content returned by the oracle
        challenge_label: Label of the scored challenge (seeds the jitter)
        model: Identifier of the model that answered
        pass_threshold: Confidence at which the oracle result counts as a match

    Returns:
        OracleScoreResponse
    """
    raw = raw_text if isinstance(raw_text, str) else "{}"
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Oracle answered with malformed JSON; scoring as empty")
        parsed = {}
    if not isinstance(parsed, dict):
        parsed = {}

    if parsed.get("match_score") is not None:
        score = _coerce_score(parsed.get("match_score"))
    else:
        score = _coerce_score(parsed.get("confidence"))

    threshold = config.ORACLE_PASS_THRESHOLD if pass_threshold is None else pass_threshold
    confidence = stabilize_oracle_confidence(score, raw, challenge_label)
    return OracleScoreResponse(
        matched=confidence >= threshold,
        confidence=confidence,
        reasons=_coerce_reasons(parsed),
        model=model,
    )


class OracleScorer:
    """
    Scores a captured still against a challenge with a remote vision model.

    One request per capture and no retries: a failed call raises
    OracleTransportError and the caller decides what to fall back to.
    """

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None):
        self._client = client
        self.model = model or config.OPENAI_VISION_MODEL

    @property
    def client(self) -> AsyncOpenAI:
        """Created on first use so the app starts without an API key"""
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=config.OPENAI_API_KEY or None,
                base_url=config.OPENAI_BASE_URL,
            )
        return self._client

    async def score(self, image_data_url: str, challenge: Challenge) -> OracleScoreResponse:
        """
        Ask the oracle how well the image matches the challenge.

        Raises:
            OracleTransportError: The request itself failed
        """
        try:
            client = self.client
            response = await client.chat.completions.create(
                model=self.model,
                messages=build_messages(image_data_url, challenge),
                response_format=RESPONSE_FORMAT,
            )
        except OpenAIError as e:
            raise OracleTransportError(f"Oracle request failed: {e}") from e

        raw = "{}"
        if response.choices:
            content = response.choices[0].message.content
            if content is not None:
                raw = content

        result = parse_oracle_response(raw, challenge.label, model=self.model)
        # Never log the image
        logger.info(
            f"Oracle score for '{challenge.id.value}': raw={raw!r} matched={result.matched} "
            f"confidence={result.confidence} reasons={result.reasons} model={self.model}"
        )
        return result

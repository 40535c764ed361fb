"""
Confidence stabilizer for scores returned by the scoring oracle.

Vision models like round numbers: left alone, displayed scores cluster on
0.80, 0.85, 0.90 and look synthetic. When the 2-decimal score lands on the
0.05 grid it is moved off it by a small offset seeded from the oracle's raw
text and the challenge label, so the same inputs always give the same score.

This is a presentation nicety, not a security control.
"""
import math

from ..models.data_models import round_confidence

GRID_STEPS = 20  # 0.05 grid
GRID_TOLERANCE = 1e-6
HASH_BASE = 31
HASH_MODULUS = 2 ** 32
JITTER_BUCKETS = 25
JITTER_CENTER = 12
JITTER_SCALE = 1000
NUDGE = 0.01


def clamp_unit(value: float) -> float:
    return min(1.0, max(0.0, value))


def is_on_grid(value: float) -> bool:
    """True when the 2-decimal rounding of ``value`` is a multiple of 0.05"""
    two_dec = round_confidence(value)
    scaled = two_dec * GRID_STEPS
    return abs(scaled - math.floor(scaled + 0.5)) < GRID_TOLERANCE


def rolling_hash(text: str) -> int:
    """
    Polynomial rolling hash over UTF-16 code units, unsigned 32-bit.

    Astral characters (most emoji) contribute their two surrogate units.
    """
    acc = 0
    data = text.encode('utf-16-le', 'surrogatepass')
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        acc = (acc * HASH_BASE + unit) % HASH_MODULUS
    return acc


def jitter_for(raw_response_text: str, challenge_label: str) -> float:
    """Deterministic offset in [-0.012, 0.012]"""
    seed = rolling_hash(f"{raw_response_text}-{challenge_label}")
    return ((seed % JITTER_BUCKETS) - JITTER_CENTER) / JITTER_SCALE


def stabilize_oracle_confidence(
    raw_score: float,
    raw_response_text: str,
    challenge_label: str
) -> float:
    """
    Clamp, de-grid and round an oracle confidence.

    Args:
        raw_score: Score reported by the oracle
        raw_response_text: The oracle's raw textual answer (jitter seed)
        challenge_label: Label of the active challenge (jitter seed)

    Returns:
        float: Confidence in [0, 1] with 2 decimals. Scores already off the
        0.05 grid are only clamped and rounded.
    """
    score = clamp_unit(raw_score)
    if is_on_grid(score):
        jitter = jitter_for(raw_response_text, challenge_label)
        adjusted = clamp_unit(score + jitter)
        if is_on_grid(adjusted):
            adjusted = clamp_unit(adjusted + (NUDGE if jitter >= 0 else -NUDGE))
        score = adjusted
    return round_confidence(score)

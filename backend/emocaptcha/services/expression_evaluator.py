"""
On-device expression evaluator.

Maps a vector of MediaPipe blendshape scores to a pass/fail verdict and a
confidence for one target challenge. Every challenge has its own rule: a
predicate over thresholded features and a confidence function. Exclusion
guards (e.g. ``jawOpen < 0.45`` for a plain smile) take part in the predicate
only, never in the confidence.
"""
import logging
import math
from typing import Callable, Dict, Iterable, NamedTuple, Optional, Union

from ..models.data_models import (
    THRESHOLDS,
    ActionUnitVector,
    Challenge,
    ChallengeId,
    MatchResult,
)

logger = logging.getLogger(__name__)

T = THRESHOLDS


class FaceFeatures:
    """
    Direct and derived features read from one action-unit vector.

    Bilateral features are the plain average of the left and right units.
    """

    def __init__(self, action_units: Optional[ActionUnitVector]):
        self._units = action_units or {}
        get = self.get

        self.smile = (get('mouthSmileLeft') + get('mouthSmileRight')) / 2
        self.jaw_open = get('jawOpen')
        self.pucker = get('mouthPucker')
        self.brow_down = (get('browDownLeft') + get('browDownRight')) / 2
        self.mouth_press = (get('mouthPressLeft') + get('mouthPressRight')) / 2
        self.blink_left = get('eyeBlinkLeft')
        self.blink_right = get('eyeBlinkRight')
        self.brow_inner_up = get('browInnerUp')
        self.brow_outer_up_left = get('browOuterUpLeft')
        self.brow_outer_up_right = get('browOuterUpRight')
        self.mouth_stretch = (get('mouthStretchLeft') + get('mouthStretchRight')) / 2
        self.cheek_puff = get('cheekPuff')
        self.eye_wide = (get('eyeWideLeft') + get('eyeWideRight')) / 2
        self.eye_squint = (get('eyeSquintLeft') + get('eyeSquintRight')) / 2
        self.tongue_out = get('tongueOut')
        self.mouth_funnel = get('mouthFunnel')
        self.nose_sneer = (get('noseSneerLeft') + get('noseSneerRight')) / 2
        self.upper_lip_raise = (get('mouthUpperUpLeft') + get('mouthUpperUpRight')) / 2
        self.frown_mouth = (get('mouthFrownLeft') + get('mouthFrownRight')) / 2
        self.mouth_shrug_upper = get('mouthShrugUpper')
        self.mouth_roll = (get('mouthRollUpper') + get('mouthRollLower')) / 2
        self.look_out_left = get('eyeLookOutLeft')
        self.look_in_left = get('eyeLookInLeft')
        self.look_out_right = get('eyeLookOutRight')
        self.look_in_right = get('eyeLookInRight')

    def get(self, name: str) -> float:
        """Intensity clamped to [0, 1]; missing or non-finite units read as 0"""
        value = self._units.get(name)
        if value is None:
            return 0.0
        value = float(value)
        if not math.isfinite(value):
            return 0.0
        return min(1.0, max(0.0, value))

    @property
    def brow_raise(self) -> float:
        """Stronger of the inner raise and the averaged outer raise"""
        return max(self.brow_inner_up, (self.brow_outer_up_left + self.brow_outer_up_right) / 2)

    @property
    def smile_delta_left(self) -> float:
        return max(0, self.get('mouthSmileLeft') - self.get('mouthSmileRight'))

    @property
    def smile_delta_right(self) -> float:
        return max(0, self.get('mouthSmileRight') - self.get('mouthSmileLeft'))

    @property
    def smile_delta(self) -> float:
        return abs(self.get('mouthSmileLeft') - self.get('mouthSmileRight'))

    @property
    def both_eyes_closed(self) -> bool:
        return self.blink_left >= T.blink_both and self.blink_right >= T.blink_both

    @property
    def strongest_blink(self) -> float:
        return max(self.blink_left, self.blink_right)

    def wink_left(self, high: float = T.wink_high) -> bool:
        """Left eye closed while the right eye stays open"""
        return self.blink_left >= high and self.blink_right <= T.wink_low

    def wink_right(self, high: float = T.wink_high) -> bool:
        """Right eye closed while the left eye stays open"""
        return self.blink_right >= high and self.blink_left <= T.wink_low

    def wink_either(self, high: float = T.wink_high) -> bool:
        return self.wink_left(high) or self.wink_right(high)


class Rule(NamedTuple):
    """Predicate and confidence function for one challenge"""
    matches: Callable[[FaceFeatures], bool]
    confidence: Callable[[FaceFeatures], float]


def _salute(f: FaceFeatures) -> bool:
    raise_ = max(f.brow_outer_up_left, f.brow_outer_up_right)
    return f.wink_either(T.salute_wink) and raise_ >= T.brow_raise


RULES: Dict[ChallengeId, Rule] = {
    ChallengeId.SMILE: Rule(
        lambda f: f.smile >= T.smile and f.jaw_open < 0.45,
        lambda f: f.smile,
    ),
    ChallengeId.OPEN_MOUTH: Rule(
        lambda f: f.jaw_open >= T.open_mouth,
        lambda f: f.jaw_open,
    ),
    ChallengeId.PUCKER: Rule(
        lambda f: f.pucker >= T.pucker and f.jaw_open < 0.35,
        lambda f: f.pucker,
    ),
    ChallengeId.ANGRY: Rule(
        lambda f: f.brow_down >= T.brow_down and f.mouth_press > T.mouth_press,
        lambda f: min(f.brow_down, max(f.mouth_press, 0.4)),
    ),
    ChallengeId.WINK_LEFT: Rule(
        lambda f: f.wink_left(),
        lambda f: f.blink_left,
    ),
    ChallengeId.WINK_RIGHT: Rule(
        lambda f: f.wink_right(),
        lambda f: f.blink_right,
    ),
    ChallengeId.CHEEK_PUFF: Rule(
        lambda f: f.cheek_puff >= T.cheek_puff and f.jaw_open < 0.4,
        lambda f: f.cheek_puff,
    ),
    ChallengeId.EYEBROW_RAISE: Rule(
        lambda f: f.brow_raise >= T.brow_raise,
        lambda f: f.brow_raise,
    ),
    ChallengeId.MOUTH_STRETCH: Rule(
        lambda f: f.mouth_stretch >= T.mouth_stretch and f.jaw_open < 0.5,
        lambda f: f.mouth_stretch,
    ),
    ChallengeId.SURPRISED: Rule(
        lambda f: f.jaw_open >= T.surprised_jaw and f.brow_raise >= T.surprised_brow,
        lambda f: min(f.jaw_open, f.brow_raise),
    ),
    ChallengeId.EYE_WIDE: Rule(
        lambda f: f.eye_wide >= T.eye_wide,
        lambda f: f.eye_wide,
    ),
    ChallengeId.SQUINT: Rule(
        lambda f: f.eye_squint >= T.squint and f.jaw_open < 0.4,
        lambda f: f.eye_squint,
    ),
    ChallengeId.TONGUE_OUT: Rule(
        lambda f: f.tongue_out >= T.tongue_out,
        lambda f: f.tongue_out,
    ),
    ChallengeId.SNEER: Rule(
        lambda f: f.nose_sneer >= T.sneer,
        lambda f: f.nose_sneer,
    ),
    ChallengeId.RAISE_UPPER_LIP: Rule(
        lambda f: f.upper_lip_raise >= T.upper_lip,
        lambda f: f.upper_lip_raise,
    ),
    ChallengeId.SMIRK_LEFT: Rule(
        lambda f: f.smile_delta_left >= T.smirk_delta and f.jaw_open < 0.45,
        lambda f: f.smile_delta_left,
    ),
    ChallengeId.SMIRK_RIGHT: Rule(
        lambda f: f.smile_delta_right >= T.smirk_delta and f.jaw_open < 0.45,
        lambda f: f.smile_delta_right,
    ),
    ChallengeId.FROWN: Rule(
        lambda f: f.frown_mouth >= T.frown and f.brow_down >= T.frown_brow_assist,
        lambda f: min(f.frown_mouth, max(f.brow_down, 0.3)),
    ),
    ChallengeId.MOUTH_SHRUG: Rule(
        lambda f: f.mouth_shrug_upper >= T.mouth_shrug and f.jaw_open < 0.5,
        lambda f: f.mouth_shrug_upper,
    ),
    ChallengeId.LIP_ROLL: Rule(
        lambda f: f.mouth_roll >= T.lip_roll and f.jaw_open < 0.5,
        lambda f: f.mouth_roll,
    ),
    ChallengeId.WINK_TONGUE: Rule(
        lambda f: f.wink_either() and f.tongue_out >= T.tongue_out,
        lambda f: min(f.strongest_blink, f.tongue_out) if f.wink_either() else 0,
    ),
    # Blowing a kiss only needs one eye mostly shut; the other eye is not guarded.
    ChallengeId.KISS: Rule(
        lambda f: (
            f.pucker >= T.pucker
            and (f.blink_left >= T.wink_assist or f.blink_right >= T.wink_assist)
            and f.jaw_open < 0.45
        ),
        lambda f: min(f.pucker, f.strongest_blink),
    ),
    ChallengeId.BROWS_OPEN_MOUTH: Rule(
        lambda f: f.jaw_open >= T.open_mouth and f.brow_raise >= T.brow_raise,
        lambda f: min(f.jaw_open, f.brow_raise),
    ),
    ChallengeId.EYES_CLOSED: Rule(
        lambda f: f.both_eyes_closed,
        lambda f: min(f.blink_left, f.blink_right),
    ),
    ChallengeId.GLANCE_LEFT: Rule(
        lambda f: (
            f.look_out_left >= T.eye_look
            and f.look_in_right >= T.eye_look
            and f.jaw_open < 0.5
        ),
        lambda f: min(f.look_out_left, f.look_in_right),
    ),
    ChallengeId.GLANCE_RIGHT: Rule(
        lambda f: (
            f.look_out_right >= T.eye_look
            and f.look_in_left >= T.eye_look
            and f.jaw_open < 0.5
        ),
        lambda f: min(f.look_out_right, f.look_in_left),
    ),
    ChallengeId.BROW_FURROW: Rule(
        lambda f: f.brow_down >= T.brow_furrow and f.brow_inner_up <= T.brow_inner_low,
        lambda f: min(f.brow_down, 1 - max(0, f.brow_inner_up - 0.2)),
    ),
    ChallengeId.LIPS_PRESS: Rule(
        lambda f: f.mouth_press >= T.lips_press_both and f.jaw_open < 0.35,
        lambda f: f.mouth_press,
    ),
    ChallengeId.WEARY: Rule(
        lambda f: f.eye_squint >= T.weary_squint and f.frown_mouth >= T.weary_frown,
        lambda f: min(f.eye_squint, f.frown_mouth),
    ),
    ChallengeId.THINKING: Rule(
        lambda f: (
            abs(f.brow_outer_up_left - f.brow_outer_up_right) >= T.thinking_brow_delta
            and f.mouth_press >= T.thinking_press
        ),
        lambda f: min(abs(f.brow_outer_up_left - f.brow_outer_up_right), f.mouth_press),
    ),
    ChallengeId.HUG: Rule(
        lambda f: f.smile >= T.hug_smile and f.eye_squint >= T.squint,
        lambda f: min(f.smile, f.eye_squint),
    ),
    # Salute raises one outer brow, so the brow signal is the larger side, not the average.
    ChallengeId.SALUTE: Rule(
        _salute,
        lambda f: (
            min(max(f.brow_outer_up_left, f.brow_outer_up_right), f.strongest_blink)
            if _salute(f) else 0
        ),
    ),
    ChallengeId.VOMIT: Rule(
        lambda f: f.jaw_open >= T.vomit_jaw and f.tongue_out >= T.tongue_out,
        lambda f: min(f.jaw_open, f.tongue_out),
    ),
    ChallengeId.SCREAM: Rule(
        lambda f: (
            f.jaw_open >= T.scream_jaw
            and f.eye_wide >= T.eye_wide
            and f.brow_raise >= T.brow_raise
        ),
        lambda f: min(f.jaw_open, f.eye_wide, f.brow_raise),
    ),
    ChallengeId.PLEAD: Rule(
        lambda f: (
            f.eye_wide >= T.plead_eye
            and f.brow_inner_up >= T.plead_brow
            and f.mouth_press >= 0.2
        ),
        lambda f: min(f.eye_wide, f.brow_inner_up, max(f.mouth_press, 0.2)),
    ),
    ChallengeId.MIND_BLOWN: Rule(
        lambda f: (
            f.eye_wide >= T.eye_wide
            and f.brow_raise >= T.brow_raise
            and (f.mouth_funnel >= T.funnel or f.jaw_open >= T.open_mouth)
        ),
        lambda f: min(f.eye_wide, f.brow_raise, max(f.mouth_funnel, f.jaw_open)),
    ),
    ChallengeId.SLEEP: Rule(
        lambda f: f.both_eyes_closed and f.mouth_press < 0.5,
        lambda f: min(f.blink_left, f.blink_right),
    ),
    ChallengeId.LAUGH: Rule(
        lambda f: (
            f.smile >= T.laugh_smile
            and f.jaw_open >= T.laugh_jaw
            and f.eye_squint >= T.squint
        ),
        lambda f: min(f.smile, f.jaw_open, f.eye_squint),
    ),
    ChallengeId.SMIRK: Rule(
        lambda f: f.smile_delta >= T.smirk_delta and f.jaw_open < 0.45,
        lambda f: f.smile_delta,
    ),
    ChallengeId.DROOL: Rule(
        lambda f: f.tongue_out >= T.drool_tongue and f.jaw_open >= 0.4,
        lambda f: min(f.tongue_out, max(f.jaw_open, 0.4)),
    ),
    ChallengeId.SHUSH: Rule(
        lambda f: f.mouth_press >= T.shush_press and f.eye_squint >= 0.3,
        lambda f: min(f.mouth_press, max(f.eye_squint, 0.3)),
    ),
}


def _resolve_id(challenge: Union[Challenge, ChallengeId, str, None]) -> Optional[ChallengeId]:
    if isinstance(challenge, Challenge):
        return challenge.id
    if isinstance(challenge, ChallengeId):
        return challenge
    try:
        return ChallengeId(challenge)
    except ValueError:
        return None


def evaluate_on_device(
    challenge: Union[Challenge, ChallengeId, str],
    action_units: Optional[ActionUnitVector],
) -> MatchResult:
    """
    Score one action-unit vector against a target challenge.

    Args:
        challenge: Challenge, its id, or the id string
        action_units: Blendshape name -> intensity. ``None`` (no face or no
            camera) behaves like an all-zero vector.

    Returns:
        MatchResult: ``matched=False, confidence=0.0`` for an unknown challenge
    """
    challenge_id = _resolve_id(challenge)
    rule = RULES.get(challenge_id) if challenge_id is not None else None
    if rule is None:
        logger.warning(f"No expression rule for challenge {challenge!r}")
        return MatchResult(matched=False, confidence=0.0)

    features = FaceFeatures(action_units)
    matched = bool(rule.matches(features))
    confidence = max(0.0, min(1.0, float(rule.confidence(features))))
    return MatchResult(matched=matched, confidence=confidence)


def action_units_from_blendshapes(categories: Optional[Iterable]) -> Dict[str, float]:
    """
    Convert a MediaPipe blendshape category list into an action-unit vector.

    Accepts objects with ``category_name``/``score`` attributes (MediaPipe
    Tasks) or dicts with ``categoryName``/``score`` keys (the browser SDK).
    """
    units: Dict[str, float] = {}
    for category in categories or []:
        if isinstance(category, dict):
            name = category.get('categoryName') or category.get('category_name')
            score = category.get('score')
        else:
            name = getattr(category, 'category_name', None)
            score = getattr(category, 'score', None)
        if name and score is not None:
            units[name] = float(score)
    return units

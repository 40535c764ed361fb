"""
Data models for challenges, thresholds and scoring results
"""
import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Mapping, Optional


# Blendshape name -> intensity in [0, 1]. Missing names read as 0.
ActionUnitVector = Mapping[str, float]


class ChallengeId(str, Enum):
    """Target expressions a user can be asked to make"""
    SMILE = "smile"
    OPEN_MOUTH = "open_mouth"
    PUCKER = "pucker"
    ANGRY = "angry"
    WINK_LEFT = "wink_left"
    WINK_RIGHT = "wink_right"
    CHEEK_PUFF = "cheek_puff"
    EYEBROW_RAISE = "eyebrow_raise"
    MOUTH_STRETCH = "mouth_stretch"
    SURPRISED = "surprised"
    EYE_WIDE = "eye_wide"
    SQUINT = "squint"
    TONGUE_OUT = "tongue_out"
    SNEER = "sneer"
    RAISE_UPPER_LIP = "raise_upper_lip"
    SMIRK_LEFT = "smirk_left"
    SMIRK_RIGHT = "smirk_right"
    FROWN = "frown"
    MOUTH_SHRUG = "mouth_shrug"
    LIP_ROLL = "lip_roll"
    WINK_TONGUE = "wink_tongue"
    KISS = "kiss"
    BROWS_OPEN_MOUTH = "brows_open_mouth"
    EYES_CLOSED = "eyes_closed"
    GLANCE_LEFT = "glance_left"
    GLANCE_RIGHT = "glance_right"
    BROW_FURROW = "brow_furrow"
    LIPS_PRESS = "lips_press"
    WEARY = "weary"
    THINKING = "thinking"
    HUG = "hug"
    SALUTE = "salute"
    VOMIT = "vomit"
    SCREAM = "scream"
    PLEAD = "plead"
    MIND_BLOWN = "mind_blown"
    SLEEP = "sleep"
    LAUGH = "laugh"
    SMIRK = "smirk"
    DROOL = "drool"
    SHUSH = "shush"


class ScoringEngine(str, Enum):
    """Which scoring path produces the verdict"""
    ORACLE = "oracle"
    ON_DEVICE = "on_device"


@dataclass(frozen=True)
class Challenge:
    """A target expression shown to the user as an emoji and a label"""
    id: ChallengeId
    emoji: str
    label: str

    def to_dict(self) -> dict:
        return {"id": self.id.value, "emoji": self.emoji, "label": self.label}


@dataclass(frozen=True)
class Thresholds:
    """Comparison constants used by the expression rules"""
    smile: float = 0.45
    open_mouth: float = 0.5
    pucker: float = 0.4
    brow_down: float = 0.3
    brow_raise: float = 0.45
    wink_high: float = 0.6
    wink_low: float = 0.25
    mouth_press: float = 0.25
    mouth_stretch: float = 0.4
    cheek_puff: float = 0.45
    surprised_jaw: float = 0.55
    surprised_brow: float = 0.45
    eye_wide: float = 0.55
    squint: float = 0.55
    tongue_out: float = 0.6
    funnel: float = 0.5
    sneer: float = 0.5
    upper_lip: float = 0.35
    smirk_delta: float = 0.25
    frown: float = 0.5
    frown_brow_assist: float = 0.25
    cheek_suck: float = 0.55
    mouth_shrug: float = 0.45
    lip_roll: float = 0.5
    wink_assist: float = 0.5
    blink_both: float = 0.75
    eye_look: float = 0.35
    brow_furrow: float = 0.45
    brow_inner_low: float = 0.3
    lips_press_both: float = 0.5
    weary_squint: float = 0.6
    weary_frown: float = 0.45
    eye_up: float = 0.45
    thinking_brow_delta: float = 0.25
    thinking_press: float = 0.35
    hug_smile: float = 0.55
    salute_wink: float = 0.6
    vomit_jaw: float = 0.75
    scream_jaw: float = 0.8
    plead_eye: float = 0.6
    plead_brow: float = 0.55
    blown_mix: float = 0.6
    laugh_smile: float = 0.6
    laugh_jaw: float = 0.6
    drool_tongue: float = 0.55
    nerd_cross: float = 0.4
    shush_press: float = 0.6
    hold_seconds: float = 0.9
    instant_pass: float = 0.9


THRESHOLDS = Thresholds()


def round_confidence(value: float) -> float:
    """Round half-up to 2 decimals, the way scores are displayed"""
    return math.floor(value * 100 + 0.5) / 100


@dataclass(frozen=True)
class MatchResult:
    """Outcome of either scoring path"""
    matched: bool
    confidence: float

    def to_dict(self) -> dict:
        return {"matched": self.matched, "confidence": self.confidence}


@dataclass
class OracleScoreResponse:
    """Post-processed answer of the scoring oracle for one capture"""
    matched: bool
    confidence: float
    reasons: Optional[List[str]] = None
    model: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "matched": self.matched,
            "confidence": self.confidence,
            "reasons": self.reasons,
            "model": self.model,
        }


@dataclass
class Verdict:
    """Unified accept/reject decision for one capture"""
    result: MatchResult
    passed: bool
    source: ScoringEngine
    reasons: Optional[List[str]] = None
    model: Optional[str] = None
    fell_back: bool = False

    @property
    def display_confidence(self) -> float:
        return round_confidence(self.result.confidence)

    def to_dict(self) -> dict:
        return {
            "matched": self.result.matched,
            "confidence": self.display_confidence,
            "passed": self.passed,
            "source": self.source.value,
            "reasons": self.reasons,
            "model": self.model,
            "fellBack": self.fell_back,
        }

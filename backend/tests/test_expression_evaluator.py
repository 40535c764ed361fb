"""
Unit tests for the on-device expression evaluator
"""
from types import SimpleNamespace

import pytest
from hypothesis import given, strategies as st, settings

from emocaptcha.models.data_models import ChallengeId, MatchResult, THRESHOLDS
from emocaptcha.services.challenge_engine import ChallengeEngine
from emocaptcha.services.expression_evaluator import (
    RULES,
    FaceFeatures,
    action_units_from_blendshapes,
    evaluate_on_device,
)
from emocaptcha.services.verification_service import is_pass


BLENDSHAPE_NAMES = [
    "browDownLeft", "browDownRight", "browInnerUp", "browOuterUpLeft", "browOuterUpRight",
    "cheekPuff", "eyeBlinkLeft", "eyeBlinkRight", "eyeLookInLeft", "eyeLookInRight",
    "eyeLookOutLeft", "eyeLookOutRight", "eyeSquintLeft", "eyeSquintRight",
    "eyeWideLeft", "eyeWideRight", "jawOpen", "mouthFrownLeft", "mouthFrownRight",
    "mouthFunnel", "mouthPressLeft", "mouthPressRight", "mouthPucker", "mouthRollLower",
    "mouthRollUpper", "mouthShrugUpper", "mouthSmileLeft", "mouthSmileRight",
    "mouthStretchLeft", "mouthStretchRight", "mouthUpperUpLeft", "mouthUpperUpRight",
    "noseSneerLeft", "noseSneerRight", "tongueOut",
]


def both(prefix, value):
    """Same intensity on the left and right unit"""
    return {f"{prefix}Left": value, f"{prefix}Right": value}


# One clear performance of each expression and the confidence it must yield
POSITIVE_CASES = [
    ("smile", {**both("mouthSmile", 0.6), "jawOpen": 0.1}, 0.6),
    ("open_mouth", {"jawOpen": 0.9}, 0.9),
    ("pucker", {"mouthPucker": 0.7, "jawOpen": 0.1}, 0.7),
    ("angry", {**both("browDown", 0.6), **both("mouthPress", 0.3)}, 0.4),
    ("wink_left", {"eyeBlinkLeft": 0.8, "eyeBlinkRight": 0.1}, 0.8),
    ("wink_right", {"eyeBlinkRight": 0.8, "eyeBlinkLeft": 0.1}, 0.8),
    ("cheek_puff", {"cheekPuff": 0.7, "jawOpen": 0.1}, 0.7),
    ("eyebrow_raise", {"browInnerUp": 0.6}, 0.6),
    ("mouth_stretch", {**both("mouthStretch", 0.5), "jawOpen": 0.1}, 0.5),
    ("surprised", {"jawOpen": 0.7, "browInnerUp": 0.6}, 0.6),
    ("eye_wide", both("eyeWide", 0.7), 0.7),
    ("squint", {**both("eyeSquint", 0.7), "jawOpen": 0.1}, 0.7),
    ("tongue_out", {"tongueOut": 0.7}, 0.7),
    ("sneer", both("noseSneer", 0.6), 0.6),
    ("raise_upper_lip", both("mouthUpperUp", 0.5), 0.5),
    ("smirk_left", {"mouthSmileLeft": 0.6, "mouthSmileRight": 0.2, "jawOpen": 0.1}, 0.4),
    ("smirk_right", {"mouthSmileRight": 0.6, "mouthSmileLeft": 0.2, "jawOpen": 0.1}, 0.4),
    ("frown", {**both("mouthFrown", 0.6), **both("browDown", 0.4)}, 0.4),
    ("mouth_shrug", {"mouthShrugUpper": 0.6, "jawOpen": 0.1}, 0.6),
    ("lip_roll", {"mouthRollUpper": 0.6, "mouthRollLower": 0.6}, 0.6),
    ("wink_tongue", {"eyeBlinkLeft": 0.8, "eyeBlinkRight": 0.1, "tongueOut": 0.7}, 0.7),
    ("kiss", {"mouthPucker": 0.6, "eyeBlinkLeft": 0.7, "jawOpen": 0.1}, 0.6),
    ("brows_open_mouth", {"jawOpen": 0.6, "browInnerUp": 0.5}, 0.5),
    ("eyes_closed", {"eyeBlinkLeft": 0.9, "eyeBlinkRight": 0.8}, 0.8),
    ("glance_left", {"eyeLookOutLeft": 0.5, "eyeLookInRight": 0.6}, 0.5),
    ("glance_right", {"eyeLookOutRight": 0.5, "eyeLookInLeft": 0.6}, 0.5),
    ("brow_furrow", {**both("browDown", 0.6), "browInnerUp": 0.1}, 0.6),
    ("lips_press", {**both("mouthPress", 0.6), "jawOpen": 0.1}, 0.6),
    ("weary", {**both("eyeSquint", 0.7), **both("mouthFrown", 0.5)}, 0.5),
    ("thinking", {"browOuterUpLeft": 0.6, "browOuterUpRight": 0.1, **both("mouthPress", 0.4)}, 0.4),
    ("hug", {**both("mouthSmile", 0.6), **both("eyeSquint", 0.6)}, 0.6),
    ("salute", {"eyeBlinkRight": 0.7, "eyeBlinkLeft": 0.1, "browOuterUpLeft": 0.6}, 0.6),
    ("vomit", {"jawOpen": 0.8, "tongueOut": 0.7}, 0.7),
    ("scream", {"jawOpen": 0.9, **both("eyeWide", 0.6), "browInnerUp": 0.7}, 0.6),
    ("plead", {**both("eyeWide", 0.7), "browInnerUp": 0.6, **both("mouthPress", 0.3)}, 0.3),
    ("mind_blown", {**both("eyeWide", 0.7), "browInnerUp": 0.6, "mouthFunnel": 0.6, "jawOpen": 0.1}, 0.6),
    ("sleep", {"eyeBlinkLeft": 0.9, "eyeBlinkRight": 0.9}, 0.9),
    ("laugh", {**both("mouthSmile", 0.7), "jawOpen": 0.7, **both("eyeSquint", 0.6)}, 0.6),
    ("smirk", {"mouthSmileLeft": 0.2, "mouthSmileRight": 0.6, "jawOpen": 0.1}, 0.4),
    ("drool", {"tongueOut": 0.6, "jawOpen": 0.5}, 0.5),
    ("shush", {**both("mouthPress", 0.7), **both("eyeSquint", 0.4)}, 0.4),
]


class TestRuleTable:
    """The dispatch table covers the whole catalog"""

    def test_every_catalog_entry_has_a_rule(self):
        for challenge in ChallengeEngine.CATALOG:
            assert challenge.id in RULES

    def test_every_rule_has_a_positive_case(self):
        covered = {ChallengeId(cid) for cid, _, _ in POSITIVE_CASES}
        assert covered == set(RULES)

    @pytest.mark.parametrize("challenge_id", [c.value for c in ChallengeId])
    def test_neutral_face_never_matches(self, challenge_id):
        result = evaluate_on_device(challenge_id, {})
        assert result.matched is False
        assert 0.0 <= result.confidence <= 1.0

    @pytest.mark.parametrize("challenge_id", [c.value for c in ChallengeId])
    def test_missing_detection_never_matches(self, challenge_id):
        """No face or no camera: the vector is None"""
        result = evaluate_on_device(challenge_id, None)
        assert result.matched is False

    @pytest.mark.parametrize("challenge_id,units,confidence", POSITIVE_CASES)
    def test_clear_expression_matches(self, challenge_id, units, confidence):
        result = evaluate_on_device(challenge_id, units)
        assert result.matched is True
        assert result.confidence == pytest.approx(confidence)


class TestGuards:
    """Exclusion guards and directional rules"""

    def test_open_mouth(self):
        result = evaluate_on_device("open_mouth", {"jawOpen": 0.9})
        assert result.matched is True
        assert result.confidence == 0.9

    def test_open_mouth_threshold_is_inclusive(self):
        assert evaluate_on_device("open_mouth", {"jawOpen": THRESHOLDS.open_mouth}).matched is True
        assert evaluate_on_device("open_mouth", {"jawOpen": 0.49}).matched is False

    def test_wink_left(self):
        result = evaluate_on_device("wink_left", {"eyeBlinkLeft": 0.8, "eyeBlinkRight": 0.1})
        assert result.matched is True

    def test_wink_left_rejects_both_eyes_closed(self):
        result = evaluate_on_device("wink_left", {"eyeBlinkLeft": 0.8, "eyeBlinkRight": 0.8})
        assert result.matched is False
        # Guard only affects the predicate
        assert result.confidence == 0.8

    def test_wink_right_rejects_left_wink(self):
        result = evaluate_on_device("wink_right", {"eyeBlinkLeft": 0.8, "eyeBlinkRight": 0.1})
        assert result.matched is False

    def test_smile_jaw_guard(self):
        result = evaluate_on_device(
            "smile", {"mouthSmileLeft": 0.6, "mouthSmileRight": 0.6, "jawOpen": 0.6}
        )
        assert result.matched is False
        assert result.confidence == pytest.approx(0.6)

    def test_smile_with_closed_jaw(self):
        result = evaluate_on_device(
            "smile", {"mouthSmileLeft": 0.6, "mouthSmileRight": 0.6, "jawOpen": 0.1}
        )
        assert result.matched is True

    def test_smirk_direction(self):
        left_smirk = {"mouthSmileLeft": 0.6, "mouthSmileRight": 0.2}
        assert evaluate_on_device("smirk_left", left_smirk).matched is True
        assert evaluate_on_device("smirk", left_smirk).matched is True
        wrong_side = evaluate_on_device("smirk_right", left_smirk)
        assert wrong_side.matched is False
        assert wrong_side.confidence == 0.0

    def test_smirk_rejects_open_jaw(self):
        units = {"mouthSmileLeft": 0.6, "mouthSmileRight": 0.2, "jawOpen": 0.5}
        assert evaluate_on_device("smirk", units).matched is False

    def test_angry_confidence_floor(self):
        """Mouth press below 0.4 is floored in the confidence"""
        result = evaluate_on_device("angry", {**both("browDown", 0.9), **both("mouthPress", 0.3)})
        assert result.matched is True
        assert result.confidence == pytest.approx(0.4)

    def test_angry_press_is_strictly_greater(self):
        units = {**both("browDown", 0.9), **both("mouthPress", THRESHOLDS.mouth_press)}
        assert evaluate_on_device("angry", units).matched is False

    def test_eyebrow_raise_uses_outer_average(self):
        result = evaluate_on_device("eyebrow_raise", both("browOuterUp", 0.5))
        assert result.matched is True
        assert result.confidence == pytest.approx(0.5)

    def test_wink_tongue_needs_one_eye_open(self):
        units = {"eyeBlinkLeft": 0.8, "eyeBlinkRight": 0.8, "tongueOut": 0.9}
        result = evaluate_on_device("wink_tongue", units)
        assert result.matched is False
        assert result.confidence == 0

    def test_salute_confidence_zero_when_unmatched(self):
        units = {"eyeBlinkRight": 0.7, "eyeBlinkLeft": 0.1, "browOuterUpLeft": 0.3}
        result = evaluate_on_device("salute", units)
        assert result.matched is False
        assert result.confidence == 0

    def test_kiss_accepts_either_eye(self):
        units = {"mouthPucker": 0.6, "eyeBlinkLeft": 0.6, "eyeBlinkRight": 0.6}
        assert evaluate_on_device("kiss", units).matched is True

    def test_mind_blown_accepts_open_jaw_instead_of_funnel(self):
        units = {**both("eyeWide", 0.7), "browInnerUp": 0.6, "jawOpen": 0.6}
        assert evaluate_on_device("mind_blown", units).matched is True

    def test_mind_blown_needs_mouth_shape(self):
        units = {**both("eyeWide", 0.7), "browInnerUp": 0.6}
        assert evaluate_on_device("mind_blown", units).matched is False

    def test_brow_furrow_rejects_inner_raise(self):
        units = {**both("browDown", 0.6), "browInnerUp": 0.5}
        result = evaluate_on_device("brow_furrow", units)
        assert result.matched is False
        assert result.confidence == pytest.approx(0.6)

    def test_sleep_rejects_pressed_lips(self):
        units = {"eyeBlinkLeft": 0.9, "eyeBlinkRight": 0.9, **both("mouthPress", 0.6)}
        assert evaluate_on_device("sleep", units).matched is False
        assert evaluate_on_device("eyes_closed", units).matched is True


class TestUnknownAndInputs:

    def test_unknown_challenge_is_a_miss(self):
        assert evaluate_on_device("moonwalk", {"jawOpen": 1.0}) == MatchResult(False, 0.0)

    def test_accepts_challenge_objects_and_enums(self):
        challenge = ChallengeEngine().get("open_mouth")
        units = {"jawOpen": 0.9}
        assert evaluate_on_device(challenge, units) == evaluate_on_device(ChallengeId.OPEN_MOUTH, units)

    def test_none_values_read_as_zero(self):
        assert evaluate_on_device("open_mouth", {"jawOpen": None}).confidence == 0.0

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_values_read_as_zero(self, value):
        result = evaluate_on_device("open_mouth", {"jawOpen": value})
        assert result == MatchResult(matched=False, confidence=0.0)
        assert is_pass(result) is False

    def test_out_of_range_values_are_clamped(self):
        result = evaluate_on_device("open_mouth", {"jawOpen": 7.0})
        assert result.confidence == 1.0
        smile = evaluate_on_device("smile", {"mouthSmileLeft": 7.0})
        assert smile.confidence == pytest.approx(0.5)
        assert FaceFeatures({"jawOpen": -3.0}).jaw_open == 0.0

    def test_instant_pass_overrides_guard(self):
        """A very strong smile passes even though the jaw guard fails"""
        result = evaluate_on_device("smile", {**both("mouthSmile", 0.95), "jawOpen": 0.6})
        assert result.matched is False
        assert is_pass(result) is True

    def test_features_bilateral_average(self):
        features = FaceFeatures({"browDownLeft": 0.2, "browDownRight": 0.6})
        assert features.brow_down == pytest.approx(0.4)
        assert features.jaw_open == 0.0


class TestBlendshapeConversion:

    def test_from_mediapipe_categories(self):
        categories = [
            SimpleNamespace(category_name="jawOpen", score=0.7),
            SimpleNamespace(category_name="_neutral", score=0.1),
        ]
        assert action_units_from_blendshapes(categories) == {"jawOpen": 0.7, "_neutral": 0.1}

    def test_from_browser_dicts(self):
        categories = [{"categoryName": "tongueOut", "score": 0.4}, {"categoryName": "", "score": 1}]
        assert action_units_from_blendshapes(categories) == {"tongueOut": 0.4}

    def test_empty(self):
        assert action_units_from_blendshapes(None) == {}


class TestEvaluatorProperties:
    """Property-based checks over arbitrary faces"""

    @given(
        challenge_id=st.sampled_from([c.value for c in ChallengeId]),
        units=st.dictionaries(
            st.sampled_from(BLENDSHAPE_NAMES),
            st.floats(min_value=0.0, max_value=1.0, allow_nan=False),
        ),
    )
    @settings(max_examples=300)
    def test_confidence_in_unit_range(self, challenge_id, units):
        result = evaluate_on_device(challenge_id, units)
        assert isinstance(result.matched, bool)
        assert 0.0 <= result.confidence <= 1.0

    @given(
        challenge_id=st.sampled_from([c.value for c in ChallengeId]),
        units=st.dictionaries(
            st.sampled_from(BLENDSHAPE_NAMES),
            st.floats(allow_nan=True, allow_infinity=True),
        ),
    )
    @settings(max_examples=300)
    def test_arbitrary_floats_stay_in_range(self, challenge_id, units):
        """Garbage intensities still give a confidence in range"""
        result = evaluate_on_device(challenge_id, units)
        assert 0.0 <= result.confidence <= 1.0

    @given(
        challenge_id=st.sampled_from([c.value for c in ChallengeId]),
        units=st.dictionaries(
            st.sampled_from(BLENDSHAPE_NAMES),
            st.floats(min_value=0.0, max_value=1.0, allow_nan=False),
        ),
    )
    @settings(max_examples=100)
    def test_evaluation_is_pure(self, challenge_id, units):
        snapshot = dict(units)
        first = evaluate_on_device(challenge_id, units)
        second = evaluate_on_device(challenge_id, units)
        assert first == second
        assert units == snapshot

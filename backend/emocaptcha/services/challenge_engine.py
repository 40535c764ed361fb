"""
Challenge Engine for drawing random expression challenges
"""
import secrets
from typing import List, Optional, Union

from ..models.data_models import Challenge, ChallengeId


class ChallengeEngine:
    """
    Holds the static expression catalog and draws challenges from it.

    Draws are uniform over the catalog. Nothing is persisted; every new
    session starts from a fresh random draw.
    """

    CATALOG: List[Challenge] = [
        Challenge(ChallengeId.SMILE, "😀", "Smile"),
        Challenge(ChallengeId.OPEN_MOUTH, "😮", "Open mouth"),
        Challenge(ChallengeId.PUCKER, "😗", "Pucker lips"),
        Challenge(ChallengeId.ANGRY, "😠", "Frown / brow down"),
        Challenge(ChallengeId.WINK_LEFT, "😉", "Wink left eye"),
        Challenge(ChallengeId.WINK_RIGHT, "😜", "Wink right eye"),
        Challenge(ChallengeId.CHEEK_PUFF, "😤", "Puff cheeks"),
        Challenge(ChallengeId.EYEBROW_RAISE, "🤨", "Furrow brows"),
        Challenge(ChallengeId.MOUTH_STRETCH, "😬", "Stretch mouth"),
        Challenge(ChallengeId.SURPRISED, "😯", "Surprised"),
        Challenge(ChallengeId.EYE_WIDE, "😳", "Open eyes wide"),
        Challenge(ChallengeId.SQUINT, "😑", "Squint eyes"),
        Challenge(ChallengeId.TONGUE_OUT, "😝", "Stick out tongue"),
        Challenge(ChallengeId.SNEER, "😒", "Nose sneer"),
        Challenge(ChallengeId.RAISE_UPPER_LIP, "🫤", "Raise upper lip"),
        Challenge(ChallengeId.SMIRK_LEFT, "😏", "Smirk left"),
        Challenge(ChallengeId.SMIRK_RIGHT, "😏", "Smirk right"),
        Challenge(ChallengeId.FROWN, "☹️", "Frown"),
        Challenge(ChallengeId.MOUTH_SHRUG, "😕", "Mouth shrug"),
        Challenge(ChallengeId.LIP_ROLL, "🤐", "Lip roll"),
        Challenge(ChallengeId.WINK_TONGUE, "😜", "Wink + tongue"),
        Challenge(ChallengeId.KISS, "😘", "Blow a kiss"),
        Challenge(ChallengeId.BROWS_OPEN_MOUTH, "😲", "Wide eyes + brows up + round mouth"),
        Challenge(ChallengeId.EYES_CLOSED, "😌", "Close both eyes"),
        Challenge(ChallengeId.GLANCE_LEFT, "🙄", "Glance left"),
        Challenge(ChallengeId.GLANCE_RIGHT, "🙄", "Glance right"),
        Challenge(ChallengeId.BROW_FURROW, "🤨", "Furrow brows"),
        Challenge(ChallengeId.LIPS_PRESS, "🤐", "Press lips (shush)"),
        Challenge(ChallengeId.WEARY, "😩", "Squint + frown"),
        Challenge(ChallengeId.THINKING, "🤔", "Thinking face"),
        Challenge(ChallengeId.HUG, "🤗", "Squinty smile"),
        Challenge(ChallengeId.SALUTE, "🫡", "Wink + raise brow"),
        Challenge(ChallengeId.VOMIT, "🤮", "Vomit (tongue + open)"),
        Challenge(ChallengeId.SCREAM, "😱", "Scream"),
        Challenge(ChallengeId.PLEAD, "🥹", "Pleading"),
        Challenge(ChallengeId.MIND_BLOWN, "🤯", "Wide eyes + brows up + round mouth"),
        Challenge(ChallengeId.SLEEP, "😴", "Sleep (eyes closed)"),
        Challenge(ChallengeId.LAUGH, "😂", "Laugh"),
        Challenge(ChallengeId.SMIRK, "😏", "Smirk"),
        Challenge(ChallengeId.DROOL, "🤤", "Drool (tongue)"),
        Challenge(ChallengeId.SHUSH, "🤫", "Press lips (shush)"),
    ]

    def __init__(self, catalog: Optional[List[Challenge]] = None):
        self.catalog = list(catalog) if catalog is not None else list(self.CATALOG)
        self._by_id = {challenge.id.value: challenge for challenge in self.catalog}

    def get(self, challenge_id: Union[str, ChallengeId, None]) -> Optional[Challenge]:
        """
        Look up a catalog entry by id.

        Returns:
            Challenge or None when the id is not in the catalog
        """
        if challenge_id is None:
            return None
        key = challenge_id.value if isinstance(challenge_id, ChallengeId) else str(challenge_id)
        return self._by_id.get(key)

    def pick_random(self) -> Challenge:
        """Uniform draw over the full catalog"""
        return secrets.choice(self.catalog)

    def pick_different(self, current: Challenge) -> Challenge:
        """
        Uniform draw over the catalog minus the current challenge.

        Args:
            current: The active challenge

        Returns:
            Challenge: A challenge whose id differs from ``current.id``

        Raises:
            ValueError: If the catalog has no other entry to draw
        """
        remaining = [c for c in self.catalog if c.id != current.id]
        if not remaining:
            raise ValueError("Catalog needs at least two challenges to shuffle")
        return secrets.choice(remaining)

"""
Request bodies for the HTTP API
"""
from typing import Annotated, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

# Blendshape intensity as reported by MediaPipe
Intensity = Annotated[float, Field(ge=0.0, le=1.0, allow_inf_nan=False)]


class ChallengePayload(BaseModel):
    id: Optional[str] = None
    emoji: Optional[str] = None
    label: Optional[str] = None


class ScoreRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_data_url: Optional[str] = Field(None, alias="imageDataUrl")
    challenge: Optional[ChallengePayload] = None


class EvaluateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    challenge_id: str = Field(..., alias="challengeId")
    action_units: Dict[str, Intensity] = Field(default_factory=dict, alias="actionUnits")


class VerifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    challenge_id: str = Field(..., alias="challengeId")
    image_data_url: Optional[str] = Field(None, alias="imageDataUrl")
    action_units: Optional[Dict[str, Intensity]] = Field(None, alias="actionUnits")
    engine: Optional[str] = None


class SessionCreateRequest(BaseModel):
    engine: Optional[str] = None


class CaptureRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_data_url: Optional[str] = Field(None, alias="imageDataUrl")
    action_units: Optional[Dict[str, Intensity]] = Field(None, alias="actionUnits")

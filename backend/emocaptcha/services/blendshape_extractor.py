"""
Blendshape extraction with the MediaPipe Face Landmarker
"""
import base64
import binascii
import logging
import os
from typing import Dict, Optional

import cv2
import mediapipe as mp
import numpy as np

from .expression_evaluator import action_units_from_blendshapes

logger = logging.getLogger(__name__)


class BlendshapeExtractor:
    """
    Turns a captured still into an action-unit vector.

    The FaceLandmarker is created lazily on first use so the rest of the
    service (and its tests) run without the model file. Any failure along the
    way yields an empty vector, which the evaluator reads as a neutral face.
    """

    def __init__(self, model_path: Optional[str] = None):
        """
        Args:
            model_path: Path to the MediaPipe face landmarker model file.
                       Download it with ``python download_mediapipe_model.py``.
        """
        self.model_path = model_path
        self._face_landmarker = None

    @property
    def face_landmarker(self):
        """
        Lazy initialization of MediaPipe FaceLandmarker.

        Returns None if the model cannot be loaded.
        """
        if self._face_landmarker is None:
            if self.model_path is None:
                logger.warning(
                    "Model path not provided. Face landmarker will not be available. "
                    "Download the model using: python download_mediapipe_model.py"
                )
                return None

            if not os.path.exists(self.model_path):
                logger.warning(
                    f"MediaPipe model not found at {self.model_path}. "
                    "Download it using: python download_mediapipe_model.py"
                )
                return None

            try:
                base_options = mp.tasks.BaseOptions(model_asset_path=self.model_path)
                options = mp.tasks.vision.FaceLandmarkerOptions(
                    base_options=base_options,
                    running_mode=mp.tasks.vision.RunningMode.IMAGE,
                    num_faces=1,
                    min_face_detection_confidence=0.5,
                    min_face_presence_confidence=0.5,
                    output_face_blendshapes=True,
                    output_facial_transformation_matrixes=False
                )
                self._face_landmarker = mp.tasks.vision.FaceLandmarker.create_from_options(options)
            except Exception as e:
                logger.error(f"Failed to initialize MediaPipe FaceLandmarker: {e}")
                return None

        return self._face_landmarker

    @staticmethod
    def decode_image(image_data: str) -> Optional[np.ndarray]:
        """
        Decode a base64 still (optionally a data URL) into a BGR frame.

        Returns:
            np.ndarray or None if decoding fails
        """
        if not image_data:
            return None
        try:
            # Remove data URL prefix if present (e.g., "data:image/jpeg;base64,")
            if "," in image_data:
                image_data = image_data.split(",", 1)[1]
            img_bytes = base64.b64decode(image_data)
        except (binascii.Error, ValueError) as e:
            logger.error(f"Error decoding image: {e}")
            return None

        nparr = np.frombuffer(img_bytes, np.uint8)
        if nparr.size == 0:
            logger.error("Failed to decode image: empty payload")
            return None
        frame = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
        if frame is None:
            logger.error("Failed to decode image: cv2.imdecode returned None")
        return frame

    @staticmethod
    def preprocess_frame(frame: np.ndarray) -> np.ndarray:
        """Convert from BGR (OpenCV default) to RGB (MediaPipe requirement)"""
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def extract(self, frame: Optional[np.ndarray]) -> Dict[str, float]:
        """
        Blendshape scores of the first detected face.

        Args:
            frame: Still in BGR format, or None when the capture failed

        Returns:
            Dict[str, float]: Empty when there is no frame, no model or no face
        """
        if frame is None or frame.size == 0:
            return {}

        landmarker = self.face_landmarker
        if landmarker is None:
            return {}

        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=self.preprocess_frame(frame))
        try:
            detection_result = landmarker.detect(mp_image)
        except Exception as e:
            logger.error(f"Face landmarker detection failed: {e}")
            return {}

        blendshapes = detection_result.face_blendshapes
        if not blendshapes:
            logger.info("No face detected in captured still")
            return {}

        return action_units_from_blendshapes(blendshapes[0])

    def extract_from_data_url(self, image_data: str) -> Dict[str, float]:
        return self.extract(self.decode_image(image_data))

    def close(self) -> None:
        """Release MediaPipe resources"""
        if self._face_landmarker is not None:
            self._face_landmarker.close()
            self._face_landmarker = None

#!/usr/bin/env python3
"""
Download the MediaPipe Face Landmarker model.

The on-device scoring path needs this model to turn a captured still into
blendshape scores. The file lands at MEDIAPIPE_MODEL_PATH (or the default
under ~/.mediapipe_models).
"""

import argparse
import urllib.request
from pathlib import Path

from emocaptcha.config import config

MODEL_URL = "https://storage.googleapis.com/mediapipe-models/face_landmarker/face_landmarker/float16/latest/face_landmarker.task"


def download_model(model_path: Path, force: bool = False) -> bool:
    """Download the model to ``model_path``; skip if present unless forced."""
    model_path.parent.mkdir(parents=True, exist_ok=True)

    if model_path.exists() and not force:
        print(f"✓ Model already exists at {model_path}")
        print(f"✓ Model size: {model_path.stat().st_size / 1024 / 1024:.2f} MB")
        return True

    print(f"Downloading MediaPipe Face Landmarker from {MODEL_URL}...")
    print(f"Saving to {model_path}")

    def report_progress(block_num, block_size, total_size):
        if total_size <= 0:
            return
        percent = min(100, block_num * block_size * 100 / total_size)
        print(f"\rProgress: {percent:.1f}%", end="")

    try:
        urllib.request.urlretrieve(MODEL_URL, model_path, reporthook=report_progress)
    except OSError as e:
        print(f"\n✗ Download failed: {e}")
        if model_path.exists():
            model_path.unlink()
        return False

    print("\n✓ Download complete!")
    print(f"✓ Model size: {model_path.stat().st_size / 1024 / 1024:.2f} MB")
    return True


def main():
    parser = argparse.ArgumentParser(description="Download the MediaPipe Face Landmarker model")
    parser.add_argument("--dest", default=config.MEDIAPIPE_MODEL_PATH, help="Where to save the model")
    parser.add_argument("--force", action="store_true", help="Download even if the file exists")
    args = parser.parse_args()

    model_path = Path(args.dest).expanduser()
    if download_model(model_path, force=args.force):
        print("\nThe BlendshapeExtractor can now score expressions on-device.")
        print(f"\nSet MEDIAPIPE_MODEL_PATH={model_path} if you used a custom location.")
    else:
        print("\nPlease check your internet connection and try again.")


if __name__ == "__main__":
    main()

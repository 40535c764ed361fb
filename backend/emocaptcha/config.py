"""
Configuration management for the application
"""
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Application configuration"""
    
    # Scoring oracle (OpenAI-compatible vision model)
    OPENAI_API_KEY = os.getenv('OPENAI_API_KEY', '')
    OPENAI_BASE_URL = os.getenv('OPENAI_BASE_URL') or None
    OPENAI_VISION_MODEL = os.getenv('OPENAI_VISION_MODEL', 'gpt-5-mini')
    ORACLE_PASS_THRESHOLD = float(os.getenv('ORACLE_PASS_THRESHOLD', '0.6'))
    
    # Scoring engine used when the client does not ask for one
    DEFAULT_ENGINE = os.getenv('DEFAULT_ENGINE', 'oracle').lower()
    
    # Widget sessions are dropped this long after creation
    SESSION_TTL_SECONDS = int(os.getenv('SESSION_TTL_SECONDS', '600'))
    
    # MediaPipe Face Landmarker model
    MEDIAPIPE_MODEL_PATH = os.path.expanduser(os.getenv(
        'MEDIAPIPE_MODEL_PATH',
        str(Path.home() / '.mediapipe_models' / 'face_landmarker.task')
    ))
    
    # Server Configuration
    HOST = os.getenv('HOST', '0.0.0.0')
    PORT = int(os.getenv('PORT', '8000'))
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', 'http://localhost:3000').split(',')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
    
    @classmethod
    def oracle_enabled(cls) -> bool:
        """The oracle path needs an API key or a self-hosted base URL"""
        return bool(cls.OPENAI_API_KEY or cls.OPENAI_BASE_URL)


config = Config()

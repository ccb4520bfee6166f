# config.py
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

basedir = Path(__file__).resolve().parent


def _env_list(name):
    raw = os.getenv(name, '')
    return [item.strip().lower() for item in raw.split(',') if item.strip()]


class Config:
    SECRET_KEY = os.getenv('SECRET_KEY', 'my_secret_key')

    # Token signing
    JWT_SECRET = os.getenv('JWT_SECRET', SECRET_KEY)
    JWT_ALGORITHM = 'HS256'
    JWT_EXPIRES_HOURS = int(os.getenv('JWT_EXPIRES_HOURS', 24 * 7))
    PASSWORD_HASH_METHOD = 'pbkdf2:sha256'

    SQLALCHEMY_DATABASE_URI = os.getenv(
        'DATABASE_URL',
        f'sqlite:///{basedir}/instance/app.db'
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Upload configuration
    UPLOAD_FOLDER = os.getenv('UPLOAD_PATH', os.path.join(basedir, 'uploads'))
    MAX_UPLOAD_SIZE = int(os.getenv('MAX_FILE_SIZE', 10 * 1024 * 1024))  # 10MB
    # Multipart overhead on top of the file itself
    MAX_CONTENT_LENGTH = MAX_UPLOAD_SIZE + 1024 * 1024

    # Remote image download
    DOWNLOAD_TIMEOUT = float(os.getenv('DOWNLOAD_TIMEOUT', 10))
    ALLOWED_IMAGE_HOSTS = _env_list('ALLOWED_IMAGE_HOSTS')

    # Detection provider. Without an API key the synthetic provider is used.
    VISION_API_KEY = os.getenv('VISION_API_KEY')
    VISION_API_URL = os.getenv(
        'VISION_API_URL',
        'https://vision.googleapis.com/v1/images:annotate'
    )
    VISION_API_TIMEOUT = float(os.getenv('VISION_API_TIMEOUT', 10))
    VISION_MAX_RESULTS = 20
    SYNTHETIC_DELAY_RANGE = (0.5, 1.5)

    # History pagination
    DEFAULT_PAGE_SIZE = 10
    MAX_PAGE_SIZE = 100

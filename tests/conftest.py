"""Shared fixtures: an isolated app per test, an authenticated user and sample images."""

from __future__ import annotations

import io
from typing import Callable
from unittest.mock import MagicMock, patch

import pytest
from flask import Flask
from flask.testing import FlaskClient
from PIL import Image as PILImage

from app import create_app
from config import Config
from database.db import db

TEST_USER = {'username': 'alice', 'email': 'alice@x.com', 'password': 'secret123'}


@pytest.fixture()
def app(tmp_path) -> Flask:
    class TestConfig(Config):
        TESTING = True
        SQLALCHEMY_DATABASE_URI = 'sqlite://'
        UPLOAD_FOLDER = str(tmp_path / 'uploads')
        JWT_SECRET = 'test-secret'
        PASSWORD_HASH_METHOD = 'pbkdf2:sha256:1000'
        SYNTHETIC_DELAY_RANGE = (0, 0)
        VISION_API_KEY = None
        ALLOWED_IMAGE_HOSTS = []

    application = create_app(TestConfig)
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app: Flask) -> FlaskClient:
    return app.test_client()


@pytest.fixture()
def auth_payload(client: FlaskClient) -> dict:
    response = client.post('/api/auth/register', json=TEST_USER)
    assert response.status_code == 200
    return response.get_json()


@pytest.fixture()
def auth_headers(auth_payload: dict) -> dict:
    return {'Authorization': f"Bearer {auth_payload['token']}"}


@pytest.fixture()
def make_image() -> Callable[..., bytes]:
    def _make(width: int = 320, height: int = 240, fmt: str = 'JPEG', mode: str = 'RGB') -> bytes:
        buffer = io.BytesIO()
        PILImage.new(mode, (width, height), color=0).save(buffer, format=fmt)
        return buffer.getvalue()

    return _make


def fake_response(
    content: bytes = b'', content_type: str = 'image/jpeg', json_body=None, headers: dict | None = None
) -> MagicMock:
    """A requests.Response stand-in usable as a context manager with a streamed body."""
    response = MagicMock()
    response.__enter__.return_value = response
    response.status_code = 200
    response.content = content
    response.headers = {'Content-Type': content_type, **(headers or {})}
    response.raise_for_status.return_value = None
    body = io.BytesIO(content)
    response.raw.read1.side_effect = lambda amt=-1, decode_content=None: body.read(amt)
    if json_body is not None:
        response.json.return_value = json_body
    return response


@pytest.fixture()
def remote_image(make_image):
    """Patch image downloads to serve a generated JPEG."""
    data = make_image(1600, 1200)
    with patch('services.image_service.requests.get') as mock_get:
        mock_get.side_effect = lambda *args, **kwargs: fake_response(data)
        yield mock_get

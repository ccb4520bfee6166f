"""End-to-end tests for the /api/faces endpoints."""

from __future__ import annotations

import io
import os
from unittest.mock import patch

import pytest
import requests
from flask import Flask
from flask.testing import FlaskClient

from database.db import db
from models import Image
from services.detection_service import CloudVisionDetectionProvider, SyntheticDetectionProvider
from tests.conftest import TEST_USER, fake_response

IMAGE_URL = 'https://images.example.com/people/group.jpg'


def _assert_detection_result(data: dict) -> None:
    assert data['success'] is True
    assert 1 <= data['faceCount'] <= 5
    assert data['faceCount'] == len(data['faces'])
    for face in data['faces']:
        for key in ('x', 'y', 'width', 'height', 'confidence'):
            assert 0.0 <= face[key] <= 1.0
    assert isinstance(data['processingTime'], int)
    assert data['processingTime'] >= 0
    assert isinstance(data['imageId'], int)
    assert data['imageId'] > 0


def _upload(client: FlaskClient, headers: dict, data: bytes, filename: str, content_type: str):
    return client.post(
        '/api/faces/upload',
        headers=headers,
        data={'image': (io.BytesIO(data), filename, content_type)},
        content_type='multipart/form-data',
    )


class TestEndToEnd:
    def test_register_login_detect_then_history(self, client: FlaskClient, remote_image) -> None:
        assert client.post('/api/auth/register', json=TEST_USER).status_code == 200
        login = client.post(
            '/api/auth/login',
            json={'email': TEST_USER['email'], 'password': TEST_USER['password']},
        )
        assert login.status_code == 200
        headers = {'Authorization': f"Bearer {login.get_json()['token']}"}

        detect = client.post('/api/faces/detect', headers=headers, json={'imageUrl': IMAGE_URL})
        assert detect.status_code == 200
        result = detect.get_json()
        _assert_detection_result(result)

        history = client.get('/api/faces/history?page=1&limit=10', headers=headers)
        assert history.status_code == 200
        detections = history.get_json()['detections']
        assert len(detections) == 1
        assert detections[0]['image_id'] == result['imageId']
        assert detections[0]['face_count'] == result['faceCount']
        assert detections[0]['image_url'] == IMAGE_URL


class TestDetectFromUrl:
    def test_requires_token(self, client: FlaskClient) -> None:
        response = client.post('/api/faces/detect', json={'imageUrl': IMAGE_URL})
        assert response.status_code == 401

    def test_missing_url(self, client: FlaskClient, auth_headers: dict) -> None:
        response = client.post('/api/faces/detect', headers=auth_headers, json={})
        assert response.status_code == 400
        assert response.get_json()['message'] == 'Image URL is required'

    def test_malformed_url(self, client: FlaskClient, auth_headers: dict) -> None:
        response = client.post('/api/faces/detect', headers=auth_headers, json={'imageUrl': 'not a url'})
        assert response.status_code == 400
        assert response.get_json()['message'] == 'Invalid URL format'

    def test_download_failure(self, client: FlaskClient, auth_headers: dict) -> None:
        with patch('services.image_service.requests.get', side_effect=requests.ConnectionError()):
            response = client.post('/api/faces/detect', headers=auth_headers, json={'imageUrl': IMAGE_URL})
        assert response.status_code == 400
        assert response.get_json()['message'] == 'Failed to download image from URL'

    def test_non_image_download_is_unsupported(self, client: FlaskClient, auth_headers: dict) -> None:
        with patch('services.image_service.requests.get', return_value=fake_response(b'<html></html>')):
            response = client.post('/api/faces/detect', headers=auth_headers, json={'imageUrl': IMAGE_URL})
        assert response.status_code == 400
        assert response.get_json()['message'] == 'Unsupported or corrupt image'

    def test_records_normalized_image(self, app: Flask, client: FlaskClient, auth_headers: dict, remote_image) -> None:
        response = client.post('/api/faces/detect', headers=auth_headers, json={'imageUrl': IMAGE_URL})
        image_id = response.get_json()['imageId']

        with app.app_context():
            image = db.session.get(Image, image_id)
            assert image.image_url == IMAGE_URL
            assert image.file_path is None
            assert image.file_name == 'group.jpg'
            assert image.mime_type == 'image/jpeg'
            assert image.file_size > 0

    def test_remote_provider_failure_still_succeeds(
        self, app: Flask, client: FlaskClient, auth_headers: dict, remote_image
    ) -> None:
        provider = CloudVisionDetectionProvider(
            api_key='key',
            api_url='https://vision.example.com/v1/images:annotate',
            fallback=SyntheticDetectionProvider(delay_range=(0, 0)),
        )
        app.extensions['detection_pipeline'].provider = provider

        with patch('services.detection_service.requests.post', side_effect=requests.ConnectionError('down')):
            response = client.post('/api/faces/detect', headers=auth_headers, json={'imageUrl': IMAGE_URL})

        assert response.status_code == 200
        _assert_detection_result(response.get_json())
        assert provider.fallback_count == 1

    def test_storage_failure_is_server_error(self, app: Flask, client: FlaskClient, auth_headers: dict, remote_image) -> None:
        store = app.extensions['detection_store']
        with patch.object(store, 'record_detection', side_effect=RuntimeError('db gone')):
            response = client.post('/api/faces/detect', headers=auth_headers, json={'imageUrl': IMAGE_URL})
        assert response.status_code == 500
        assert response.get_json()['message'] == 'Server error during face detection'


class TestUpload:
    def test_upload_detects_and_saves_original(
        self, app: Flask, client: FlaskClient, auth_headers: dict, make_image
    ) -> None:
        data = make_image(1200, 900)
        response = _upload(client, auth_headers, data, 'party.jpg', 'image/jpeg')
        assert response.status_code == 200
        result = response.get_json()
        _assert_detection_result(result)
        assert result['fileName'] == 'party.jpg'

        with app.app_context():
            image = db.session.get(Image, result['imageId'])
            assert image.image_url is None
            assert image.file_name == 'party.jpg'
            assert image.file_size == len(data)
            assert image.mime_type == 'image/jpeg'
            saved = os.path.join(app.config['UPLOAD_FOLDER'], image.file_path)
            with open(saved, 'rb') as fh:
                assert fh.read() == data

    def test_missing_file_field(self, client: FlaskClient, auth_headers: dict) -> None:
        response = client.post('/api/faces/upload', headers=auth_headers, data={'other': 'x'}, content_type='multipart/form-data')
        assert response.status_code == 400
        assert response.get_json()['message'] == 'No image file uploaded'

    @pytest.mark.parametrize(
        ('filename', 'content_type'),
        [('notes.txt', 'text/plain'), ('notes.jpg', 'text/plain'), ('notes.txt', 'image/jpeg')],
    )
    def test_non_image_rejected_before_processing(
        self, app: Flask, client: FlaskClient, auth_headers: dict, filename: str, content_type: str
    ) -> None:
        with patch('services.detection_pipeline.normalize_image') as mock_normalize:
            response = _upload(client, auth_headers, b'just some text', filename, content_type)

        assert response.status_code == 400
        assert response.get_json()['message'] == 'Only image files are allowed!'
        mock_normalize.assert_not_called()
        assert not os.listdir(app.config['UPLOAD_FOLDER'])

    def test_file_over_limit(self, app: Flask, client: FlaskClient, auth_headers: dict) -> None:
        app.extensions['detection_pipeline'].max_upload_size = 10
        response = _upload(client, auth_headers, b'x' * 11, 'big.png', 'image/png')
        assert response.status_code == 400
        assert 'exceeds' in response.get_json()['message']

    def test_corrupt_image_is_rejected(self, client: FlaskClient, auth_headers: dict) -> None:
        response = _upload(client, auth_headers, b'not really a png', 'fake.png', 'image/png')
        assert response.status_code == 400
        assert response.get_json()['message'] == 'Unsupported or corrupt image'


class TestHistoryAndStats:
    def test_history_defaults_and_clamping(self, client: FlaskClient, auth_headers: dict) -> None:
        response = client.get('/api/faces/history?page=0&limit=abc', headers=auth_headers)
        assert response.status_code == 200
        assert response.get_json() == {
            'detections': [],
            'pagination': {
                'currentPage': 1,
                'totalPages': 0,
                'totalCount': 0,
                'hasNext': False,
                'hasPrev': False,
            },
        }

    def test_history_page_past_end(self, client: FlaskClient, auth_headers: dict, remote_image) -> None:
        for _ in range(3):
            client.post('/api/faces/detect', headers=auth_headers, json={'imageUrl': IMAGE_URL})

        response = client.get('/api/faces/history?page=3&limit=2', headers=auth_headers)
        data = response.get_json()
        assert data['detections'] == []
        assert data['pagination']['totalPages'] == 2
        assert data['pagination']['hasNext'] is False

    def test_history_huge_page_is_empty_not_an_error(
        self, client: FlaskClient, auth_headers: dict, remote_image
    ) -> None:
        client.post('/api/faces/detect', headers=auth_headers, json={'imageUrl': IMAGE_URL})

        response = client.get('/api/faces/history?page=999999999999999999999&limit=10', headers=auth_headers)
        assert response.status_code == 200
        data = response.get_json()
        assert data['detections'] == []
        assert data['pagination'] == {
            'currentPage': 999999999999999999999,
            'totalPages': 1,
            'totalCount': 1,
            'hasNext': False,
            'hasPrev': True,
        }

    def test_history_requires_token(self, client: FlaskClient) -> None:
        assert client.get('/api/faces/history').status_code == 401

    def test_stats_for_new_user(self, client: FlaskClient, auth_headers: dict) -> None:
        response = client.get('/api/faces/stats', headers=auth_headers)
        assert response.status_code == 200
        assert response.get_json() == {
            'totalImages': 0,
            'totalDetections': 0,
            'totalFacesDetected': 0,
            'joinedDate': None,
        }

    def test_stats_after_detections(
        self, client: FlaskClient, auth_headers: dict, auth_payload: dict, remote_image
    ) -> None:
        faces = 0
        for _ in range(2):
            faces += client.post(
                '/api/faces/detect', headers=auth_headers, json={'imageUrl': IMAGE_URL}
            ).get_json()['faceCount']

        data = client.get('/api/faces/stats', headers=auth_headers).get_json()
        assert data['totalImages'] == 2
        assert data['totalDetections'] == 2
        assert data['totalFacesDetected'] == faces
        assert data['joinedDate'] == auth_payload['user']['createdAt']


class TestProxyImage:
    def test_streams_upstream_bytes(self, client: FlaskClient) -> None:
        with patch('services.image_service.requests.get', return_value=fake_response(b'PNGDATA', 'image/png')):
            response = client.get('/api/faces/proxy-image', query_string={'url': 'https://example.com/a.png'})

        assert response.status_code == 200
        assert response.data == b'PNGDATA'
        assert response.headers['Content-Type'] == 'image/png'
        assert response.headers['Cache-Control'] == 'public, max-age=3600'
        assert response.headers['Access-Control-Allow-Origin'] == '*'

    def test_missing_url(self, client: FlaskClient) -> None:
        response = client.get('/api/faces/proxy-image')
        assert response.status_code == 400
        assert response.get_json()['message'] == 'Image URL is required'

    def test_invalid_url(self, client: FlaskClient) -> None:
        response = client.get('/api/faces/proxy-image', query_string={'url': 'nope'})
        assert response.status_code == 400
        assert response.get_json()['message'] == 'Invalid URL format'

    def test_upstream_failure(self, client: FlaskClient) -> None:
        with patch('services.image_service.requests.get', side_effect=requests.ConnectionError()):
            response = client.get('/api/faces/proxy-image', query_string={'url': 'https://example.com/a.png'})
        assert response.status_code == 500
        assert response.get_json()['message'] == 'Failed to proxy image'

    def test_allow_list_blocks_other_hosts(self, app: Flask, client: FlaskClient) -> None:
        app.config['ALLOWED_IMAGE_HOSTS'] = ['images.example.com']
        with patch('services.image_service.requests.get') as mock_get:
            response = client.get('/api/faces/proxy-image', query_string={'url': 'http://169.254.169.254/latest'})
        assert response.status_code == 400
        mock_get.assert_not_called()


class TestHealth:
    def test_reports_provider(self, client: FlaskClient) -> None:
        response = client.get('/api/health')
        assert response.status_code == 200
        assert response.get_json() == {'status': 'ok', 'detectionProvider': 'synthetic'}

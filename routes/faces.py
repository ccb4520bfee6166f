# routes/faces.py
from flask import Blueprint, Response, request, jsonify, current_app
from loguru import logger

from routes.auth import json_body, token_required
from services.image_service import fetch_remote_image
from utils.errors import ApiError, DownloadFailed, FileTooLarge, ServerError, ValidationError

faces_bp = Blueprint('faces', __name__)


def get_pipeline():
    return current_app.extensions['detection_pipeline']


def get_store():
    return current_app.extensions['detection_store']


def _positive_int_arg(name, default):
    value = request.args.get(name, default, type=int)
    return value if value and value > 0 else default


@faces_bp.route('/proxy-image', methods=['GET'])
def proxy_image():
    url = request.args.get('url')
    if not url:
        raise ValidationError('Image URL is required')

    try:
        image = fetch_remote_image(
            url,
            timeout=current_app.config['DOWNLOAD_TIMEOUT'],
            max_size=current_app.config['MAX_UPLOAD_SIZE'],
            allowed_hosts=current_app.config['ALLOWED_IMAGE_HOSTS'],
        )
    except (DownloadFailed, FileTooLarge):
        raise ServerError('Failed to proxy image')

    response = Response(image.data, content_type=image.content_type)
    response.headers.update({
        'Cache-Control': 'public, max-age=3600',
        'Access-Control-Allow-Origin': '*',
        'Access-Control-Allow-Methods': 'GET',
        'Access-Control-Allow-Headers': 'Content-Type',
    })
    return response


@faces_bp.route('/detect', methods=['POST'])
@token_required
def detect(current_user):
    data = json_body()
    try:
        result = get_pipeline().detect_from_url(current_user.id, data.get('imageUrl'))
    except ApiError:
        raise
    except Exception:
        logger.exception("Face detection error")
        raise ServerError('Server error during face detection')

    return jsonify(result)


@faces_bp.route('/upload', methods=['POST'])
@token_required
def upload(current_user):
    if 'image' not in request.files:
        raise ValidationError('No image file uploaded')

    try:
        result = get_pipeline().detect_from_upload(current_user.id, request.files['image'])
    except ApiError:
        raise
    except Exception:
        logger.exception("Upload error")
        raise ServerError('Server error during upload')

    return jsonify(result)


@faces_bp.route('/history', methods=['GET'])
@token_required
def history(current_user):
    page = _positive_int_arg('page', 1)
    limit = min(
        _positive_int_arg('limit', current_app.config['DEFAULT_PAGE_SIZE']),
        current_app.config['MAX_PAGE_SIZE']
    )
    try:
        return jsonify(get_store().get_history(current_user.id, page=page, limit=limit))
    except Exception:
        logger.exception("History error")
        raise ServerError()


@faces_bp.route('/stats', methods=['GET'])
@token_required
def stats(current_user):
    try:
        return jsonify(get_store().get_stats(current_user.id))
    except Exception:
        logger.exception("Stats error")
        raise ServerError()

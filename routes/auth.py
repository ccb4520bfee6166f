# routes/auth.py
from functools import wraps

from flask import Blueprint, request, jsonify, current_app
from loguru import logger

from utils.errors import ApiError, ServerError

auth_bp = Blueprint('auth', __name__)


def get_auth_service():
    return current_app.extensions['auth_service']


def json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _bearer_token():
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer':
        return None
    return token.strip() or None


def token_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        current_user = get_auth_service().verify(_bearer_token())
        return f(current_user, *args, **kwargs)

    return decorated


@auth_bp.route('/register', methods=['POST'])
def register():
    data = json_body()
    try:
        payload = get_auth_service().register(
            data.get('username'),
            data.get('email'),
            data.get('password'),
        )
    except ApiError:
        raise
    except Exception:
        logger.exception("Registration failed")
        raise ServerError('Server error during registration')

    return jsonify(payload)


@auth_bp.route('/login', methods=['POST'])
def login():
    data = json_body()
    try:
        payload = get_auth_service().login(data.get('email'), data.get('password'))
    except ApiError:
        raise
    except Exception:
        logger.exception("Login failed")
        raise ServerError('Server error during login')

    return jsonify(payload)


@auth_bp.route('/profile', methods=['GET'])
@token_required
def profile(current_user):
    return jsonify({'user': current_user.to_public_dict()})

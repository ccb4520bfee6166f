# app.py
import os

from flask import Flask, jsonify
from loguru import logger
from werkzeug.exceptions import RequestEntityTooLarge

from config import Config
from database.db import db, init_db
from routes.auth import auth_bp
from routes.faces import faces_bp
from services.auth_service import AuthService
from services.detection_pipeline import DetectionPipeline
from services.detection_service import create_detection_provider
from services.detection_store import DetectionStore
from utils.errors import ApiError, FileTooLarge


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(error):
        return error.to_response()

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(error):
        return FileTooLarge().to_response()


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)

    init_db(app)

    # Long-lived collaborators, built once and shared by every request
    store = DetectionStore(db)
    provider = create_detection_provider(app.config)
    app.extensions['auth_service'] = AuthService.from_config(app.config)
    app.extensions['detection_store'] = store
    app.extensions['detection_provider'] = provider
    app.extensions['detection_pipeline'] = DetectionPipeline.from_config(app.config, provider, store)

    register_error_handlers(app)

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(faces_bp, url_prefix='/api/faces')

    @app.route('/api/health')
    def health():
        return jsonify({
            'status': 'ok',
            'detectionProvider': app.extensions['detection_provider'].name,
        })

    logger.info("Face detection service ready (provider={})", provider.name)
    return app


if __name__ == '__main__':
    flask_app = create_app()
    flask_app.run(
        host=os.getenv('HOST', '0.0.0.0'),
        port=int(os.getenv('PORT', 5000)),
        debug=os.getenv('FLASK_DEBUG', '0') == '1'
    )

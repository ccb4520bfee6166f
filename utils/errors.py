# utils/errors.py
from flask import jsonify


class ApiError(Exception):
    """Base class for failures reported to the client as JSON."""

    status_code = 400
    message = 'Bad request'

    def __init__(self, message=None, errors=None):
        super().__init__(message or self.message)
        if message:
            self.message = message
        self.errors = errors

    def to_dict(self):
        body = {'message': self.message}
        if self.errors:
            body['errors'] = self.errors
        return body

    def to_response(self):
        return jsonify(self.to_dict()), self.status_code


class ValidationError(ApiError):
    message = 'Validation failed'


class Unauthenticated(ApiError):
    status_code = 401
    message = 'Token is not valid'


class DuplicateEmail(ApiError):
    message = 'User with this email already exists'


class DuplicateUsername(ApiError):
    message = 'Username already exists'


class InvalidCredentials(ApiError):
    message = 'Invalid credentials'


class AcquisitionError(ApiError):
    message = 'Failed to acquire image'


class InvalidImageUrl(AcquisitionError):
    message = 'Invalid URL format'


class DownloadFailed(AcquisitionError):
    message = 'Failed to download image from URL'


class InvalidFileType(AcquisitionError):
    message = 'Only image files are allowed!'


class FileTooLarge(AcquisitionError):
    message = 'File too large'


class UnsupportedImage(ApiError):
    message = 'Unsupported or corrupt image'


class ServerError(ApiError):
    status_code = 500
    message = 'Server error'

# utils/file_handler.py
import os
import posixpath
import uuid
from datetime import datetime

from werkzeug.utils import secure_filename

from utils.errors import FileTooLarge, InvalidFileType, ValidationError


class FileHandler:
    ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}
    ALLOWED_MIME_TYPES = {
        'image/png', 'image/jpg', 'image/jpeg', 'image/pjpeg', 'image/gif', 'image/webp'
    }
    MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB

    @staticmethod
    def allowed_file(filename):
        return bool(filename) and '.' in filename and \
            filename.rsplit('.', 1)[1].lower() in FileHandler.ALLOWED_EXTENSIONS

    @staticmethod
    def allowed_mimetype(mimetype):
        return (mimetype or '').lower() in FileHandler.ALLOWED_MIME_TYPES

    @staticmethod
    def read_upload(file, max_size=None):
        """Validate an uploaded FileStorage and return its bytes.

        The extension and the declared MIME type must both name an image,
        and the payload must fit in ``max_size`` bytes.
        """
        if not file or not file.filename:
            raise ValidationError('No image file uploaded')

        if not (FileHandler.allowed_file(file.filename)
                and FileHandler.allowed_mimetype(file.mimetype)):
            raise InvalidFileType()

        max_size = max_size or FileHandler.MAX_FILE_SIZE
        # Read one byte past the limit so oversized files are detected
        # without buffering all of them
        data = file.stream.read(max_size + 1)
        file.stream.seek(0)
        if len(data) > max_size:
            raise FileTooLarge(f'File size exceeds the {max_size} byte limit')
        return data

    @staticmethod
    def save_file(file, upload_folder):
        original_filename = secure_filename(file.filename) or 'image'
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        filename = f"{timestamp}_{uuid.uuid4().hex[:12]}_{original_filename}"

        # Create year/month based directory structure
        year_month = datetime.now().strftime('%Y/%m')

        save_path = os.path.join(upload_folder, year_month)
        os.makedirs(save_path, exist_ok=True)

        file_path = os.path.join(save_path, filename)
        file.save(file_path)

        # Relative path with forward slashes
        return posixpath.join(year_month, filename)

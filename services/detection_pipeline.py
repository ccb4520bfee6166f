# services/detection_pipeline.py
import os
import time

from loguru import logger

from services.image_service import (
    OUTPUT_MIME_TYPE,
    fetch_remote_image,
    file_name_from_url,
    normalize_image,
)
from utils.errors import ValidationError
from utils.file_handler import FileHandler


def _elapsed_ms(started):
    return int((time.perf_counter() - started) * 1000)


class DetectionPipeline:
    """Per-request flow: acquire, normalize, detect, persist.

    Authentication happens before the pipeline is entered. Each step either
    advances or raises, and nothing is retried.
    """

    def __init__(self, provider, store, upload_folder, max_upload_size,
                 download_timeout=10, allowed_hosts=None):
        self.provider = provider
        self.store = store
        self.upload_folder = upload_folder
        self.max_upload_size = max_upload_size
        self.download_timeout = download_timeout
        self.allowed_hosts = allowed_hosts or []

    @classmethod
    def from_config(cls, config, provider, store):
        return cls(
            provider=provider,
            store=store,
            upload_folder=config['UPLOAD_FOLDER'],
            max_upload_size=config['MAX_UPLOAD_SIZE'],
            download_timeout=config['DOWNLOAD_TIMEOUT'],
            allowed_hosts=config['ALLOWED_IMAGE_HOSTS'],
        )

    def _detect(self, raw_bytes, started):
        normalized = normalize_image(raw_bytes)
        result = self.provider.detect(normalized)
        return normalized, result, _elapsed_ms(started)

    def detect_from_url(self, user_id, image_url):
        if not image_url:
            raise ValidationError('Image URL is required')

        started = time.perf_counter()
        remote = fetch_remote_image(
            image_url,
            timeout=self.download_timeout,
            max_size=self.max_upload_size,
            allowed_hosts=self.allowed_hosts,
        )
        normalized, result, processing_time = self._detect(remote.data, started)

        image_id = self.store.record_detection(
            user_id=user_id,
            source_url=image_url,
            file_name=file_name_from_url(image_url),
            file_size=normalized.size,
            mime_type=OUTPUT_MIME_TYPE,
            face_count=result.face_count,
            faces=result.faces,
            processing_time_ms=processing_time,
        )
        logger.info(
            "User {} detected {} face(s) in {} ({} ms, provider={})",
            user_id, result.face_count, image_url, processing_time, self.provider.name
        )
        return {
            'success': True,
            'faceCount': result.face_count,
            'faces': result.faces,
            'processingTime': processing_time,
            'imageId': image_id,
        }

    def detect_from_upload(self, user_id, file):
        started = time.perf_counter()
        raw_bytes = FileHandler.read_upload(file, self.max_upload_size)

        # Keep the original on disk before anything else can fail
        relative_path = FileHandler.save_file(file, self.upload_folder)
        logger.debug("Saved upload to {}", os.path.join(self.upload_folder, relative_path))

        normalized, result, processing_time = self._detect(raw_bytes, started)

        image_id = self.store.record_detection(
            user_id=user_id,
            file_path=relative_path,
            file_name=file.filename,
            file_size=len(raw_bytes),
            mime_type=file.mimetype,
            face_count=result.face_count,
            faces=result.faces,
            processing_time_ms=processing_time,
        )
        logger.info(
            "User {} detected {} face(s) in upload {} ({} ms, provider={})",
            user_id, result.face_count, file.filename, processing_time, self.provider.name
        )
        return {
            'success': True,
            'faceCount': result.face_count,
            'faces': result.faces,
            'processingTime': processing_time,
            'imageId': image_id,
            'fileName': file.filename,
        }

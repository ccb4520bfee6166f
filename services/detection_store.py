# services/detection_store.py
import math

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import contains_eager

from models import FaceDetection, Image, User
from utils.errors import ServerError


class DetectionStore:
    """Persistence for images, their detections and per-user aggregates.

    Built once per application around the Flask-SQLAlchemy handle and
    passed to whoever needs it.
    """

    def __init__(self, db):
        self.db = db

    @property
    def session(self):
        return self.db.session

    def record_detection(self, user_id, file_name, file_size, mime_type,
                         face_count, faces, processing_time_ms,
                         source_url=None, file_path=None):
        """Insert the Image and its FaceDetection in one transaction."""
        if (source_url is None) == (file_path is None):
            raise ValueError("Exactly one of source_url or file_path must be given")

        try:
            image = Image(
                user_id=user_id,
                image_url=source_url,
                file_path=file_path,
                file_name=file_name,
                file_size=file_size,
                mime_type=mime_type,
            )
            self.session.add(image)
            self.session.flush()
            image_id = image.id

            self.session.add(FaceDetection(
                image_id=image_id,
                user_id=user_id,
                face_count=face_count,
                detection_data=faces,
                processing_time_ms=processing_time_ms,
            ))
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("Failed to store detection for user {}", user_id)
            raise ServerError('Failed to save detection results')

        return image_id

    def get_history(self, user_id, page=1, limit=10):
        total_count = self.session.scalar(
            select(func.count(FaceDetection.id)).where(FaceDetection.user_id == user_id)
        ) or 0
        total_pages = math.ceil(total_count / limit)

        # Pages past the end are empty; their offset may not even fit in SQL
        if page > max(total_pages, 1):
            detections = []
        else:
            detections = self.session.scalars(
                select(FaceDetection)
                .join(FaceDetection.image)
                .options(contains_eager(FaceDetection.image))
                .where(FaceDetection.user_id == user_id)
                .order_by(FaceDetection.created_at.desc(), FaceDetection.id.desc())
                .limit(limit)
                .offset((page - 1) * limit)
            ).all()

        return {
            'detections': [detection.to_history_dict() for detection in detections],
            'pagination': {
                'currentPage': page,
                'totalPages': total_pages,
                'totalCount': total_count,
                'hasNext': page < total_pages,
                'hasPrev': page > 1,
            }
        }

    def get_stats(self, user_id):
        total_images = self.session.scalar(
            select(func.count(Image.id)).where(Image.user_id == user_id)
        ) or 0
        if total_images == 0:
            return {
                'totalImages': 0,
                'totalDetections': 0,
                'totalFacesDetected': 0,
                'joinedDate': None,
            }

        total_detections, total_faces = self.session.execute(
            select(
                func.count(FaceDetection.id),
                func.coalesce(func.sum(FaceDetection.face_count), 0),
            ).where(FaceDetection.user_id == user_id)
        ).one()
        user = self.session.get(User, user_id)

        return {
            'totalImages': int(total_images),
            'totalDetections': int(total_detections),
            'totalFacesDetected': int(total_faces),
            'joinedDate': user.created_at.isoformat() if user else None,
        }

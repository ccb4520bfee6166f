# models.py
from datetime import datetime, timezone

from database.db import db


def utcnow():
    # Naive UTC, stored with microseconds so history ordering is stable
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    username = db.Column(db.String(50), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    images = db.relationship("Image", back_populates="user", cascade="all, delete-orphan")

    def to_public_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'createdAt': self.created_at.isoformat(),
        }


class Image(db.Model):
    __tablename__ = 'images'
    __table_args__ = (
        # Acquired either by URL or by upload, never both
        db.CheckConstraint(
            '(image_url IS NULL) <> (file_path IS NULL)',
            name='ck_images_single_source'
        ),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    image_url = db.Column(db.String(2048))
    file_path = db.Column(db.String(500))
    file_name = db.Column(db.String(255), nullable=False)
    file_size = db.Column(db.Integer, nullable=False)
    mime_type = db.Column(db.String(100), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    user = db.relationship("User", back_populates="images")
    detections = db.relationship("FaceDetection", back_populates="image", cascade="all, delete-orphan")


class FaceDetection(db.Model):
    __tablename__ = 'face_detections'
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    image_id = db.Column(db.Integer, db.ForeignKey('images.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    face_count = db.Column(db.Integer, nullable=False)
    detection_data = db.Column(db.JSON, nullable=False, default=list)
    processing_time_ms = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

    image = db.relationship("Image", back_populates="detections")

    def to_history_dict(self):
        image = self.image
        return {
            'id': self.id,
            'image_id': self.image_id,
            'face_count': self.face_count,
            'faces': self.detection_data,
            'processing_time_ms': self.processing_time_ms,
            'created_at': self.created_at.isoformat(),
            'image_url': image.image_url,
            'file_name': image.file_name,
            'file_path': image.file_path,
        }

# services/auth_service.py
from datetime import datetime, timedelta, timezone

import jwt
from loguru import logger
from sqlalchemy.exc import IntegrityError
from werkzeug.security import generate_password_hash, check_password_hash

from database.db import db
from models import User
from utils.errors import (
    DuplicateEmail,
    DuplicateUsername,
    InvalidCredentials,
    Unauthenticated,
    ValidationError,
)
from utils.validate_field import (
    collect_errors,
    validate_email,
    validate_password,
    validate_username,
)


class AuthService:
    """Password hashing, token minting and token verification."""

    def __init__(self, secret, algorithm='HS256', expires_in=timedelta(days=7),
                 hash_method='pbkdf2:sha256'):
        self.secret = secret
        self.algorithm = algorithm
        self.expires_in = expires_in
        self.hash_method = hash_method

    @classmethod
    def from_config(cls, config):
        return cls(
            secret=config['JWT_SECRET'],
            algorithm=config['JWT_ALGORITHM'],
            expires_in=timedelta(hours=config['JWT_EXPIRES_HOURS']),
            hash_method=config['PASSWORD_HASH_METHOD'],
        )

    def create_token(self, user_id):
        now = datetime.now(timezone.utc)
        return jwt.encode({
            'user_id': user_id,
            'iat': now,
            'exp': now + self.expires_in,
        }, self.secret, algorithm=self.algorithm)

    def _auth_payload(self, user):
        return {
            'token': self.create_token(user.id),
            'user': user.to_public_dict(),
        }

    def register(self, username, email, password):
        errors = collect_errors(
            username=validate_username(username),
            email=validate_email(email),
            password=validate_password(password),
        )
        if errors:
            raise ValidationError(errors=errors)

        username = username.strip()
        email = email.strip().lower()

        if User.query.filter_by(email=email).first():
            raise DuplicateEmail()
        if User.query.filter_by(username=username).first():
            raise DuplicateUsername()

        user = User(
            username=username,
            email=email,
            password_hash=generate_password_hash(password, method=self.hash_method)
        )
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError:
            # Lost a race against a concurrent registration
            db.session.rollback()
            if User.query.filter_by(email=email).first():
                raise DuplicateEmail()
            raise DuplicateUsername()

        logger.info("Registered user {} ({})", user.id, user.username)
        return self._auth_payload(user)

    def login(self, email, password):
        has_email = isinstance(email, str) and bool(email.strip())
        has_password = isinstance(password, str) and bool(password)
        if not (has_email and has_password):
            raise ValidationError(errors=collect_errors(
                email=(has_email, "Email is required"),
                password=(has_password, "Password is required"),
            ))

        user = User.query.filter_by(email=email.strip().lower()).first()
        # Same error for unknown email and wrong password
        if not user or not check_password_hash(user.password_hash, password):
            raise InvalidCredentials()

        return self._auth_payload(user)

    def verify(self, token):
        if not token:
            raise Unauthenticated('No token, authorization denied')

        try:
            data = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.InvalidTokenError as e:
            logger.debug("Rejected token: {}", e)
            raise Unauthenticated()

        user_id = data.get('user_id')
        if not isinstance(user_id, int):
            raise Unauthenticated()

        user = db.session.get(User, user_id)
        if user is None:
            raise Unauthenticated()
        return user

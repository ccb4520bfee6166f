# utils/validate_field.py
import re

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
USERNAME_PATTERN = re.compile(r'^[A-Za-z0-9_.-]+$')

MIN_PASSWORD_LENGTH = 6
USERNAME_LENGTH = (3, 30)


def validate_username(username):
    if not isinstance(username, str) or not username.strip():
        return False, "Username is required"
    username = username.strip()
    low, high = USERNAME_LENGTH
    if not low <= len(username) <= high:
        return False, f"Username must be between {low} and {high} characters"
    if not USERNAME_PATTERN.match(username):
        return False, "Username may only contain letters, numbers, '_', '.' and '-'"
    return True, "Username is valid"


def validate_email(email):
    if not isinstance(email, str) or not email.strip():
        return False, "Email is required"
    if len(email) > 120 or not EMAIL_PATTERN.match(email.strip()):
        return False, "Please enter a valid email"
    return True, "Email is valid"


def validate_password(password):
    if not isinstance(password, str) or not password:
        return False, "Password is required"
    if len(password) < MIN_PASSWORD_LENGTH:
        return False, f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
    return True, "Password is valid"


def collect_errors(**checks):
    """Run ``field=(is_valid, message)`` pairs and keep the failures."""
    return [
        {'field': field, 'message': message}
        for field, (is_valid, message) in checks.items()
        if not is_valid
    ]

"""
Security utilities for registration input validation
"""
import re

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
USERNAME_PATTERN = re.compile(r'^[a-zA-Z0-9]{3,10}$')

MIN_PASSWORD_LENGTH = 8


def validate_email(email: str) -> bool:
    """Validate email format"""
    return bool(email) and EMAIL_PATTERN.match(email.strip()) is not None


def validate_username(username: str) -> None:
    """
    Usernames are 3-10 alphanumeric characters.

    Raises:
        ValueError: If the username is not acceptable
    """
    if not username or not USERNAME_PATTERN.match(username):
        raise ValueError("Username must be 3-10 letters or digits")


def validate_full_name(full_name: str) -> None:
    if not full_name or len(full_name.strip()) < 3:
        raise ValueError("Full name must be at least 3 characters long")


def validate_password_strength(password: str) -> None:
    """
    Validate password strength according to security requirements.

    Enforces:
    - Minimum length: 8 characters
    - At least one uppercase letter (A-Z)
    - At least one digit (0-9)
    - At least one special character (!@#$%^&*)

    Args:
        password: Password string to validate

    Raises:
        ValueError: If password does not meet strength requirements
    """
    if not password:
        raise ValueError("Password cannot be empty")

    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

    if not re.search(r'[A-Z]', password):
        raise ValueError("Password must contain at least one uppercase letter (A-Z)")

    if not re.search(r'[0-9]', password):
        raise ValueError("Password must contain at least one digit (0-9)")

    if not re.search(r'[!@#$%^&*]', password):
        raise ValueError("Password must contain at least one special character (!@#$%^&*)")

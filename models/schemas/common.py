from marshmallow import ValidationError

PASSWORD_MIN_LENGTH = 6
# argon2 has no input limit, but hashing cost grows with input size
PASSWORD_MAX_LENGTH = 1024


def normalize_email(raw):
    """Trim and lowercase; the stored form used for uniqueness and lookups."""
    return raw.strip().lower() if isinstance(raw, str) else raw


def validate_password(value: str) -> None:
    if len(value) < PASSWORD_MIN_LENGTH:
        raise ValidationError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long.")
    if len(value) > PASSWORD_MAX_LENGTH:
        raise ValidationError(f"Password must be at most {PASSWORD_MAX_LENGTH} characters long.")

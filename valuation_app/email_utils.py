import re

# local@domain.tld with no whitespace and a single "@"
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MIN_EMAIL_LENGTH = 3
# RFC 5321
MAX_EMAIL_LENGTH = 254


def sanitize_email(email) -> str:
    """Trim surrounding whitespace and lowercase."""
    if not email or not isinstance(email, str):
        return ""
    return email.strip().lower()


def is_valid_email(email) -> bool:
    sanitized = sanitize_email(email)
    if not sanitized:
        return False
    return EMAIL_PATTERN.match(sanitized) is not None


def get_email_validation_error(email) -> str | None:
    """
    Validate an email address and describe the first problem found.

    Args:
        email: Raw email input.

    Returns:
        str | None: An error message, or None if the email is valid.
    """
    sanitized = sanitize_email(email)

    if not sanitized:
        return "Email is required"

    if len(sanitized) < MIN_EMAIL_LENGTH:
        return "Email is too short"

    if len(sanitized) > MAX_EMAIL_LENGTH:
        return f"Email is too long (max {MAX_EMAIL_LENGTH} characters)"

    if not is_valid_email(sanitized):
        return "Invalid email format"

    return None


def require_valid_email(email) -> str:
    """
    Return the sanitized email, raising ValueError if it is invalid.
    """
    error = get_email_validation_error(email)
    if error:
        raise ValueError(error)
    return sanitize_email(email)

"""Application errors and input validation."""

MAX_INPUT_LENGTH = 1000


class AppError(Exception):
    """Error with an HTTP status attached.

    Operational errors are expected failures (bad input, missing config) and
    are reported to the caller; anything else is a bug.
    """

    def __init__(self, message: str, status_code: int = 500, is_operational: bool = True) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.is_operational = is_operational


class IdentityError(Exception):
    """Raised when the identity provider cannot confirm an identity.

    ``status_code`` is set when the provider answered with an error status and
    left as None for transport failures.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def validate_input(value: object, field_name: str) -> str:
    """Return ``value`` trimmed, or raise AppError(400) if it is not usable text."""
    if not isinstance(value, str):
        raise AppError(f"{field_name} must be a string", 400)

    trimmed = value.strip()
    if not trimmed:
        raise AppError(f"{field_name} cannot be empty", 400)

    if len(value) > MAX_INPUT_LENGTH:
        raise AppError(f"{field_name} is too long", 400)

    return trimmed

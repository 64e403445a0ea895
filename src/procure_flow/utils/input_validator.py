import logging
import typing

from procure_flow.utils.errors import RequestValidationError

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class SuspiciousInputError(RequestValidationError):
    pass


class InputValidator:
    """
    Validates the free-text fields of permission requests and admin responses.

    Checks, in order:
    - Required fields are non-blank after trimming
    - Length limits per field
    - Control character restrictions
    - Runs of special characters
    """

    MAX_LENGTHS = {
        "reason": 500,
        "adminResponse": 500,
        "pengadaanId": 100,
    }

    MAX_CONTROL_CHAR_PERCENTAGE = 5

    MAX_CONSECUTIVE_SPECIAL_CHARS = 20

    @classmethod
    def clean_reason(cls, reason: typing.Any) -> str:
        """
        Trims and validates a requester's justification.

        :raises RequestValidationError: If the reason is missing or too long
        :raises SuspiciousInputError: If the reason looks malformed
        """
        return cls.clean_required_field(reason, "reason")

    @classmethod
    def clean_admin_response(cls, response: typing.Any, *, required: bool) -> typing.Optional[str]:
        """
        Trims and validates an admin note. Blank notes collapse to None unless
        ``required`` is set, in which case they are rejected.
        """
        if response is None or (isinstance(response, str) and not response.strip()):
            if required:
                raise RequestValidationError("adminResponse is required when rejecting a request")
            return None
        return cls.clean_required_field(response, "adminResponse")

    @classmethod
    def clean_required_field(cls, text: typing.Any, field_name: str) -> str:
        if not isinstance(text, str):
            raise RequestValidationError(f"{field_name} must be a string")

        cleaned = text.strip()
        if not cleaned:
            raise RequestValidationError(f"{field_name} is required")

        cls.validate_field(cleaned, field_name)
        return cleaned

    @classmethod
    def validate_field(cls, text: str, field_name: str) -> None:
        """
        Validate a single input field using objective criteria.

        :raises RequestValidationError: If the field is too long
        :raises SuspiciousInputError: If the field fails a composition check
        """
        max_length = cls.MAX_LENGTHS.get(field_name, 500)
        if len(text) > max_length:
            _LOGGER.warning(f"Length violation: {field_name} is {len(text)} chars (max {max_length})")
            raise RequestValidationError(f"{field_name} cannot exceed {max_length} characters")

        control_chars = sum(1 for c in text if ord(c) < 32 and c not in "\n\r\t")
        if control_chars > 0:
            control_percentage = (control_chars / len(text)) * 100
            if control_percentage > cls.MAX_CONTROL_CHAR_PERCENTAGE:
                _LOGGER.warning(f"Excessive control characters in {field_name}: {control_percentage:.1f}%")
                raise SuspiciousInputError(f"{field_name} contains too many control characters")

        max_consecutive = 0
        current_consecutive = 0
        for char in text:
            if not char.isalnum() and not char.isspace():
                current_consecutive += 1
                max_consecutive = max(max_consecutive, current_consecutive)
            else:
                current_consecutive = 0

        if max_consecutive > cls.MAX_CONSECUTIVE_SPECIAL_CHARS:
            _LOGGER.warning(f"Excessive consecutive special chars in {field_name}: {max_consecutive}")
            raise SuspiciousInputError(f"{field_name} contains unusual character sequences")

    @classmethod
    def sanitize_for_logging(cls, text: str, max_length: int = 80) -> str:
        """
        Truncates user-supplied text before it is written to the logs.
        """
        if len(text) > max_length:
            return text[:max_length] + "..."
        return text

"""
Structured Validation Error Utilities

Standard 422 bodies for request parameters the routers check themselves, so
clients can tell a bad request apart from a server or connectivity problem.

Error Response Format:
{
    "error": "missing_parameter" | "invalid_parameter",
    "parameter": "statement_id",
    "message": "statement_id is required"
}
"""

from enum import Enum
from typing import Optional, Any, Type, TypeVar

from fastapi import HTTPException, status

MAX_IDENTIFIER_LENGTH = 64

E = TypeVar("E", bound=Enum)


class ValidationErrorResponse:
    """Structured validation error response builder."""

    @staticmethod
    def missing_parameter(parameter: str, message: Optional[str] = None) -> dict:
        return {
            "error": "missing_parameter",
            "parameter": parameter,
            "message": message or f"{parameter} is required"
        }

    @staticmethod
    def invalid_parameter(parameter: str, message: str, value: Optional[Any] = None) -> dict:
        """
        Args:
            parameter: Name of the invalid parameter
            message: Description of the validation error
            value: The invalid value, echoed back truncated
        """
        response = {
            "error": "invalid_parameter",
            "parameter": parameter,
            "message": message
        }
        if value is not None:
            response["received_value"] = str(value)[:100]
        return response


def raise_missing_parameter(parameter: str, message: Optional[str] = None):
    raise HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=ValidationErrorResponse.missing_parameter(parameter, message)
    )


def raise_invalid_parameter(parameter: str, message: str, value: Optional[Any] = None):
    raise HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=ValidationErrorResponse.invalid_parameter(parameter, message, value)
    )


def validate_identifier(value: Optional[str], parameter: str) -> str:
    """
    Check a path identifier is present, short and free of whitespace.

    Returns:
        The stripped identifier
    """
    if value is None or not value.strip():
        raise_missing_parameter(parameter)

    cleaned = value.strip()
    if len(cleaned) > MAX_IDENTIFIER_LENGTH or any(ch.isspace() for ch in cleaned):
        raise_invalid_parameter(
            parameter,
            f"{parameter} must be at most {MAX_IDENTIFIER_LENGTH} characters without spaces",
            value
        )
    return cleaned


def parse_enum_parameter(enum_cls: Type[E], value: Optional[str], parameter: str) -> Optional[E]:
    """Parse an optional enum value, 422 with the allowed values if unknown."""
    if value is None or value == "":
        return None
    try:
        return enum_cls(value.strip().lower())
    except ValueError:
        raise_invalid_parameter(
            parameter,
            f"Invalid {parameter}. Valid values: {[m.value for m in enum_cls]}",
            value
        )

"""
Utils Package

Provides utility modules for:
- validation_errors: structured 422 responses for request parameters
"""

from .validation_errors import (
    ValidationErrorResponse,
    raise_missing_parameter,
    raise_invalid_parameter,
    validate_identifier,
    parse_enum_parameter,
)

__all__ = [
    'ValidationErrorResponse',
    'raise_missing_parameter',
    'raise_invalid_parameter',
    'validate_identifier',
    'parse_enum_parameter',
]

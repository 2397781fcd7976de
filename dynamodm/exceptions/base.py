"""
Root of the dynamodm exception hierarchy.

Errors mapped from a storage failure keep the botocore exception as
``original_error`` and its AWS error code in ``context['error_code']``.
"""

from typing import Any, Dict, Optional


class DynamoDMError(Exception):
    """Base exception for all dynamodm errors.

    Attributes:
        message: Human-readable error message
        original_error: The exception this error was mapped from (if any)
        context: Details such as the table, document id or AWS error code,
            appended to the string form
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.original_error = original_error
        self.context = context or {}
        super().__init__(message)

    @property
    def error_code(self) -> Optional[str]:
        """AWS error code of the storage failure this error was mapped from."""
        return self.context.get('error_code')

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{key}={value}" for key, value in self.context.items())
        return f"{self.message} (Context: {details})"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.message!r}, "
            f"original_error={self.original_error!r}, context={self.context!r})"
        )

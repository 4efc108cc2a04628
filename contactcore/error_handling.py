"""Standardized error handling patterns for contact intake."""

from typing import Any, Dict, Optional, Type
from contextlib import contextmanager


class ContactCoreError(Exception):
    """Base exception for all contact intake errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}


class ConfigurationError(ContactCoreError):
    """Missing or invalid configuration, raised when the value is first needed."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code="configuration", context=context)
        self.config_key = config_key


class DealCloudAPIError(ContactCoreError):
    """Non-success outcome of a DealCloud HTTP call."""

    default_code = "dealcloud_api"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code=self.default_code, context=context)
        self.status_code = status_code
        self.body = body


class AuthenticationError(DealCloudAPIError):
    """The token endpoint rejected the client credentials."""

    default_code = "authentication"


class QueryError(DealCloudAPIError):
    """A row query failed."""

    default_code = "query"


class InsertError(DealCloudAPIError):
    """A row insert failed."""

    default_code = "insert"


class ExtractionError(ContactCoreError):
    """The language model call itself failed."""

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code="extraction", context=context)
        self.stage = stage


class ExtractionValidationError(ExtractionError):
    """Model output could not be parsed into the target schema."""

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        raw_response: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, stage=stage, context=context)
        self.error_code = "extraction_validation"
        self.raw_response = raw_response


class DuplicateCheckError(ContactCoreError):
    """Looking up existing contacts by email failed."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="duplicate_check", context=context)


class RecordValidationError(ContactCoreError):
    """A contact record or a single field edit failed validation."""

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        field_value: Any = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code="validation", context=context)
        self.field_name = field_name
        self.field_value = field_value


class PipelineStateError(ContactCoreError):
    """An operation was requested from a state that does not allow it."""

    def __init__(
        self,
        message: str,
        state: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code="pipeline_state", context=context)
        self.state = state


def describe_error(error: Exception) -> str:
    """Build the user-facing description of an error.

    DealCloud errors carry the status code and, where the server sent one, the
    response body so the user can see why a call was rejected.
    """
    if isinstance(error, DealCloudAPIError):
        parts = [error.message]
        if error.status_code is not None and str(error.status_code) not in error.message:
            parts.append(f"Status: {error.status_code}.")
        if error.body and error.body not in error.message:
            parts.append(error.body)
        return " ".join(parts)
    return str(error)


@contextmanager
def ErrorContext(
    operation: str,
    convert_to: Type[ContactCoreError] = ContactCoreError,
    **context
):
    """Context manager that converts foreign exceptions into contact intake errors.

    Args:
        operation: Name of the operation being performed
        convert_to: Type to convert non-ContactCoreError exceptions to
        **context: Additional context key-value pairs

    Raises:
        ContactCoreError: Enhanced with context information
    """
    full_context = {
        "operation": operation,
        **context
    }

    try:
        yield
    except ContactCoreError as e:
        e.context.update(full_context)
        raise
    except Exception as e:
        converted = convert_to(
            f"Error during {operation}: {str(e)}",
            context={
                **full_context,
                "original_error": type(e).__name__
            }
        )
        raise converted from e

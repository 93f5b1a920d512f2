"""
Error hierarchy for everything below the adapter boundary.

Transport and payload problems are raised as APIError subclasses; the
`retryable` flag drives BaseAPIClient's retry loop. Adapters turn these
into SourceError values (see sources.base.source_error_from_exception),
so the only error that reaches a search caller is AggregateFailureError.
"""

from typing import Optional, Dict, Any, List


class APIError(Exception):
    """
    Root of the hierarchy.

    Attributes:
        message: What went wrong, in words a user can act on
        source: Source id ('fred', 'imf', ...) or 'orchestrator'
        status_code: Upstream HTTP status, when there was one
        response_data: Decoded body kept for debugging
        retryable: Whether another attempt might succeed
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        response_data: Optional[Any] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.source = source
        self.status_code = status_code
        self.response_data = response_data
        self.retryable = retryable

    def __str__(self) -> str:
        text = f"[{self.source}] {self.message}" if self.source else self.message
        if self.status_code:
            text = f"{text} (HTTP {self.status_code})"
        return text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "source": self.source,
            "status_code": self.status_code,
            "retryable": self.retryable,
            "response_data": self.response_data,
        }


class RetryableError(APIError):
    """5xx answers and dropped connections; status_code is None for the latter."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        response_data: Optional[Any] = None,
    ):
        super().__init__(message, source, status_code, response_data, retryable=True)


class RequestTimeoutError(RetryableError):
    """The upstream did not answer within the configured timeout."""

    def __init__(self, message: str = "Request timed out", source: Optional[str] = None):
        super().__init__(message=message, source=source)


class RateLimitError(APIError):
    """
    HTTP 429, or a throttling notice inside a 200 body.

    Never retried within a call. The cached error (short TTL) keeps the
    adapter from hammering the source until the window passes.
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        retry_after: Optional[int] = None,
        response_data: Optional[Any] = None,
    ):
        super().__init__(message, source, 429, response_data, retryable=True)
        self.retry_after = retry_after or 60


class FatalError(APIError):
    """Permanent failures: bad key, unknown series, bad parameters, no access."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        response_data: Optional[Any] = None,
    ):
        super().__init__(message, source, status_code, response_data, retryable=False)


class AuthenticationError(FatalError):
    """The source rejected the configured key (HTTP 401 or in-band)."""

    def __init__(
        self,
        message: str = "Authentication failed - check API key",
        source: Optional[str] = None,
        response_data: Optional[Any] = None,
    ):
        super().__init__(message, source, 401, response_data)


class NotFoundError(FatalError):
    """Unknown dataset, series or dimension combination."""

    def __init__(
        self,
        message: str = "Resource not found",
        source: Optional[str] = None,
        resource_id: Optional[str] = None,
        response_data: Optional[Any] = None,
    ):
        if resource_id:
            message = f"{message}: {resource_id}"
        super().__init__(message, source, 404, response_data)
        self.resource_id = resource_id


class ValidationError(FatalError):
    """The source refused the request parameters (HTTP 400 or in-band)."""

    def __init__(
        self,
        message: str = "Invalid request parameters",
        source: Optional[str] = None,
        invalid_params: Optional[Dict[str, str]] = None,
        response_data: Optional[Any] = None,
    ):
        super().__init__(message, source, 400, response_data)
        self.invalid_params = invalid_params or {}


class KeyValidationError(ValidationError):
    """
    A dimension key failed pre-flight validation.

    Raised before any network call; carries ranked corrective suggestions.
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        suggestions: Optional[List[str]] = None,
    ):
        super().__init__(message=message, source=source)
        self.suggestions = suggestions or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["suggestions"] = self.suggestions
        return data


class ConfigurationError(FatalError):
    """A required key or setting is missing; `missing_config` names the env var."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        missing_config: Optional[str] = None,
    ):
        super().__init__(message, source)
        self.missing_config = missing_config


class MalformedResponseError(APIError):
    """
    A payload matched no known structural variant.

    `structure_summary` describes what arrived instead (top-level keys,
    list element types) and is appended to the message.
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        structure_summary: Optional[str] = None,
    ):
        if structure_summary:
            message = f"{message} (structure: {structure_summary})"
        super().__init__(message=message, source=source, retryable=False)
        self.structure_summary = structure_summary


class AggregateFailureError(APIError):
    """Every candidate adapter failed for a search."""

    def __init__(self, message: str, errors: Optional[List[Any]] = None):
        super().__init__(message=message, source="orchestrator", retryable=False)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["errors"] = [
            e.model_dump(mode="json") if hasattr(e, "model_dump") else e
            for e in self.errors
        ]
        return data


_STATUS_PREFIX = {
    400: "Bad request",
    401: "Authentication failed",
    403: "Access forbidden",
    404: "Not found",
    429: "Rate limited",
}


def classify_http_error(
    status_code: int, response_text: str = "", source: Optional[str] = None
) -> APIError:
    """
    Map an HTTP error status onto the hierarchy.

    Args:
        status_code: HTTP status of the failed response
        response_text: Body text; the first 200 characters go into the message
        source: Source id for the error

    Returns:
        The APIError subclass matching the status
    """
    body = response_text[:200]
    prefix = _STATUS_PREFIX.get(status_code)
    if prefix:
        message = f"{prefix}: {body}"
        if status_code == 429:
            return RateLimitError(message, source=source)
        if status_code == 401:
            return AuthenticationError(message, source=source)
        if status_code == 404:
            return NotFoundError(message, source=source)
        if status_code == 400:
            return ValidationError(message, source=source)
        return FatalError(message, source=source, status_code=status_code)
    if 500 <= status_code < 600:
        return RetryableError(f"Server error: {body}", source=source, status_code=status_code)
    return APIError(
        f"HTTP error {status_code}: {body}",
        source=source,
        status_code=status_code,
        retryable=False,
    )

"""Typed errors for the order intake pipeline.

Every error carries a machine-readable ``kind``. The HTTP layer and the CLI
never inspect messages; they look the kind up in ``ERROR_STATUS`` and
``ERROR_CATEGORY``.
"""

from __future__ import annotations
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    PARSE = "parse"
    UPSTREAM = "upstream"
    UPSTREAM_LOGIN = "upstream_login"
    UPSTREAM_PARSE = "upstream_parse"
    UPSTREAM_TIMEOUT = "upstream_timeout"
    CREDENTIALS_MISSING = "credentials_missing"
    DOMAIN = "domain"


class ErrorCategory(str, Enum):
    """What the user should do about an error."""

    INPUT = "input"  # rephrase the order text
    UNAVAILABLE = "unavailable"  # external system down, retry later
    ORDER = "order"  # fix item matches before submitting
    CONFIGURATION = "configuration"  # operator must fix credentials


ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.PARSE: 502,
    ErrorKind.UPSTREAM: 502,
    ErrorKind.UPSTREAM_LOGIN: 502,
    ErrorKind.UPSTREAM_PARSE: 502,
    ErrorKind.UPSTREAM_TIMEOUT: 504,
    ErrorKind.CREDENTIALS_MISSING: 424,
    ErrorKind.DOMAIN: 422,
}

ERROR_CATEGORY: dict[ErrorKind, ErrorCategory] = {
    ErrorKind.VALIDATION: ErrorCategory.INPUT,
    ErrorKind.PARSE: ErrorCategory.INPUT,
    ErrorKind.UPSTREAM: ErrorCategory.UNAVAILABLE,
    ErrorKind.UPSTREAM_LOGIN: ErrorCategory.UNAVAILABLE,
    ErrorKind.UPSTREAM_PARSE: ErrorCategory.UNAVAILABLE,
    ErrorKind.UPSTREAM_TIMEOUT: ErrorCategory.UNAVAILABLE,
    ErrorKind.CREDENTIALS_MISSING: ErrorCategory.CONFIGURATION,
    ErrorKind.DOMAIN: ErrorCategory.ORDER,
}

RETRYABLE_KINDS = frozenset({
    ErrorKind.PARSE,
    ErrorKind.UPSTREAM,
    ErrorKind.UPSTREAM_LOGIN,
    ErrorKind.UPSTREAM_PARSE,
    ErrorKind.UPSTREAM_TIMEOUT,
})


class IntakeError(Exception):
    """Base class for all pipeline errors."""

    kind: ErrorKind = ErrorKind.UPSTREAM

    def __init__(self, message: str, trace_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.trace_id = trace_id

    @property
    def status_code(self) -> int:
        return ERROR_STATUS[self.kind]

    @property
    def category(self) -> ErrorCategory:
        return ERROR_CATEGORY[self.kind]

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "kind": self.kind.value,
            "category": self.category.value,
            "retryable": self.retryable,
            "trace_id": self.trace_id,
        }


class ValidationError(IntakeError):
    """Input has the wrong shape or size."""

    kind = ErrorKind.VALIDATION


class ParseError(IntakeError):
    """The LLM answered, but not with a usable order."""

    kind = ErrorKind.PARSE


class DomainError(IntakeError):
    """The order breaks a business rule and cannot be submitted as-is."""

    kind = ErrorKind.DOMAIN


class CredentialsMissingError(IntakeError):
    """ERP credentials are not configured."""

    kind = ErrorKind.CREDENTIALS_MISSING


class UpstreamError(IntakeError):
    """An external service (LLM or ERP) failed.

    ``vendor_code`` and ``body`` keep the vendor's own error payload so it can
    be shown to operators unchanged.
    """

    kind = ErrorKind.UPSTREAM

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: Any = None,
        vendor_code: Optional[str] = None,
        trace_id: Optional[str] = None,
    ):
        super().__init__(message, trace_id=trace_id)
        self.status = status
        self.body = body
        self.vendor_code = vendor_code

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["upstream_status"] = self.status
        data["vendor_code"] = self.vendor_code
        return data


class UpstreamLoginError(UpstreamError):
    """The ERP login did not return HTTP 200 with a session id."""

    kind = ErrorKind.UPSTREAM_LOGIN


class UpstreamParseError(UpstreamError):
    """The ERP answered with a body that is not valid JSON."""

    kind = ErrorKind.UPSTREAM_PARSE


class UpstreamTimeoutError(UpstreamError):
    """An external call exceeded its timeout."""

    kind = ErrorKind.UPSTREAM_TIMEOUT

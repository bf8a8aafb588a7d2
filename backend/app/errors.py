"""Error taxonomy for the grading session.

Every error carries a user-facing message (Thai) and is converted to an
HTTP response at the route boundary; none is fatal to the process.
"""

from enum import Enum


class ScanGradeError(Exception):
    """Base class for recoverable, user-visible errors."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict:
        return {"error": type(self).__name__, "message": self.message}


class SetupValidationError(ScanGradeError):
    """Bad setup input; the form stays editable for resubmission."""


class ResourceUnavailable(ScanGradeError):
    """The camera produced no usable still frame."""


class PhaseError(ScanGradeError):
    """Operation is not allowed in the session's current phase."""

    status_code = 409


class ScanInProgress(ScanGradeError):
    """A capture was requested while another scan is still outstanding."""

    status_code = 409


class AdapterErrorKind(str, Enum):
    MISSING_CREDENTIAL = "MissingCredential"
    PERMISSION_DENIED = "PermissionDenied"
    MALFORMED_RESPONSE = "MalformedResponse"
    EMPTY_RESPONSE = "EmptyResponse"
    TRANSIENT_ERROR = "TransientError"


class AdapterError(ScanGradeError):
    """The OCR service could not produce answers for this frame."""

    status_code = 502

    def __init__(self, kind: AdapterErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        if kind == AdapterErrorKind.MISSING_CREDENTIAL:
            self.status_code = 503

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail["kind"] = self.kind.value
        return detail

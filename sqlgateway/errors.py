"""Error taxonomy and classification for remote SQL failures."""
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlgateway.config import DEFAULT_USER_ERROR_SIGNATURES


GENERIC_SYSTEM_MESSAGE = "Internal server error occurred while executing query"


class GatewayError(Exception):
    """Base class for every failure raised by the gateway."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# Request validation

class InvalidRequest(GatewayError):
    """Malformed request shape. Caller's fault, never an error-severity event."""

    status_code = 400


class TableNotFound(InvalidRequest):
    def __init__(self, table_name: str):
        super().__init__(f"Table '{table_name}' does not exist")
        self.table_name = table_name


class NoActiveCredential(InvalidRequest):
    def __init__(self):
        super().__init__("No active API key configured")


# Raw failures reported by the remote client

class RemoteFailure(GatewayError):
    """Raw failure raised by the remote client, before classification."""


class TransportFailure(RemoteFailure):
    """Non-2xx response, connection error, timeout or unreadable envelope."""

    def __init__(self, status_code: Optional[int], status_text: str):
        label = f"HTTP {status_code}" if status_code is not None else "no response"
        super().__init__(f"Remote request failed ({label}): {status_text}")
        self.remote_status = status_code
        self.status_text = status_text


class AuthFailure(TransportFailure):
    """401 or 403 from the remote service."""


class ApplicationFailure(RemoteFailure):
    """HTTP 2xx with ``success: false`` in the envelope."""

    def __init__(self, messages: Sequence[str]):
        self.messages = [m for m in messages if m]
        super().__init__(", ".join(self.messages) or "Query execution failed")


# Classified outcomes

class ClassifiedError(GatewayError):
    error_type = "UnknownError"

    def __init__(self, message: str, raw_details: Optional[List[str]] = None):
        super().__init__(message)
        self.raw_details = list(raw_details or [])


class RemoteUserError(ClassifiedError):
    """The remote engine rejected the statement itself."""

    status_code = 400
    error_type = "UserError"


class RemoteSystemError(ClassifiedError):
    """Authentication, transport or unrecognised remote failure."""

    status_code = 500
    error_type = "SystemError"

    def __init__(
        self,
        message: str,
        remote_status: Optional[int] = None,
        raw_details: Optional[List[str]] = None,
    ):
        super().__init__(message, raw_details)
        self.remote_status = remote_status

    @property
    def public_message(self) -> str:
        return GENERIC_SYSTEM_MESSAGE


Signature = Tuple[str, ...]


def parse_signatures(entries: Iterable[str]) -> List[Signature]:
    """
    Turn configured signature strings into term tuples.

    ``"table&already exists"`` becomes ``("table", "already exists")``; every
    term must be present for the signature to match. Terms are not stripped,
    so a trailing space (as in ``"near "``) is significant.
    """
    signatures = []
    for entry in entries:
        terms = tuple(term.lower() for term in entry.split("&") if term)
        if terms:
            signatures.append(terms)
    return signatures


class ErrorClassifier:
    """
    Decides whether a remote failure was caused by the user's SQL or by the
    infrastructure.

    The remote service only reports free-text messages, so user errors are
    recognised by substring signatures. Anything unrecognised is a system error.
    """

    def __init__(self, signatures: Optional[Iterable[str]] = None):
        if signatures is None:
            signatures = DEFAULT_USER_ERROR_SIGNATURES
        self.signatures = parse_signatures(signatures)

    def is_user_error_text(self, text: str) -> bool:
        lowered = text.lower()
        return any(
            all(term in lowered for term in signature)
            for signature in self.signatures
        )

    def classify(self, failure: RemoteFailure) -> ClassifiedError:
        """
        Classify a remote failure.

        Args:
            failure: Failure raised by the remote client

        Returns:
            RemoteUserError when an attached message matches a signature,
            RemoteSystemError otherwise
        """
        if isinstance(failure, TransportFailure):
            return RemoteSystemError(
                failure.message,
                remote_status=failure.remote_status,
                raw_details=[failure.status_text],
            )

        if isinstance(failure, ApplicationFailure):
            if any(self.is_user_error_text(message) for message in failure.messages):
                return RemoteUserError(failure.message, raw_details=failure.messages)
            return RemoteSystemError(failure.message, raw_details=failure.messages)

        return RemoteSystemError(failure.message)


def classify_failure(failure: RemoteFailure) -> ClassifiedError:
    """Classify with the default signature list."""
    return ErrorClassifier().classify(failure)

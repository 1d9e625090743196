"""Tagged error kinds shared by adapters, storage and the sourcing policy."""
from enum import Enum


class ErrorKind(str, Enum):
    CONFIG_MISSING = "config_missing"
    RATE_LIMITED = "rate_limited"
    MALFORMED_RESPONSE = "malformed_response"
    STORAGE_FAILURE = "storage_failure"
    NETWORK_TIMEOUT = "network_timeout"
    NETWORK = "network"
    NOT_FOUND = "not_found"
    NO_QUESTIONS = "no_questions"


class CBTError(Exception):
    """Base error. `kind` drives retry and propagation decisions."""

    kind: ErrorKind = ErrorKind.NETWORK

    def __init__(self, message: str, kind: ErrorKind | None = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class ConfigMissingError(CBTError):
    kind = ErrorKind.CONFIG_MISSING


class RateLimitedError(CBTError):
    kind = ErrorKind.RATE_LIMITED


class MalformedResponseError(CBTError):
    kind = ErrorKind.MALFORMED_RESPONSE


class StorageError(CBTError):
    kind = ErrorKind.STORAGE_FAILURE


class NetworkTimeoutError(CBTError):
    kind = ErrorKind.NETWORK_TIMEOUT


class NetworkError(CBTError):
    kind = ErrorKind.NETWORK


class NotFoundError(CBTError):
    kind = ErrorKind.NOT_FOUND


class NoQuestionsError(CBTError):
    kind = ErrorKind.NO_QUESTIONS


RETRYABLE_KINDS = {ErrorKind.NETWORK, ErrorKind.NETWORK_TIMEOUT}


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, CBTError) and exc.kind in RETRYABLE_KINDS

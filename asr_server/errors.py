"""Error codes raised by the decoding core, with their transport statuses."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Final, Optional

import grpc


class ErrorCode(str, Enum):
    """Stable error identifiers surfaced to callers and logs."""

    # model resources (ERR100x)
    MODEL_FILE_MISSING = "ERR1001"
    MODEL_LOAD_FAILED = "ERR1002"
    MODEL_NOT_FOUND = "ERR1003"

    # session / pool (ERR200x)
    SESSION_NOT_ACTIVE = "ERR2001"
    SESSION_RELEASE_INVALID = "ERR2002"
    POOL_CLOSED = "ERR2003"

    # request (ERR300x)
    SAMPLE_RATE_INVALID = "ERR3001"
    DECODE_OPTION_INVALID = "ERR3002"
    AUDIO_INVALID = "ERR3003"

    # decode (ERR400x)
    LATTICE_EXTRACTION_FAILED = "ERR4001"


@dataclass(frozen=True)
class ErrorSpec:
    """Status pair and default message for one ErrorCode."""

    code: ErrorCode
    status: grpc.StatusCode
    http_status: int
    message: str


ERROR_SPECS: Final[dict[ErrorCode, ErrorSpec]] = {
    ErrorCode.MODEL_FILE_MISSING: ErrorSpec(
        ErrorCode.MODEL_FILE_MISSING,
        grpc.StatusCode.FAILED_PRECONDITION,
        500,
        "required model file is missing",
    ),
    ErrorCode.MODEL_LOAD_FAILED: ErrorSpec(
        ErrorCode.MODEL_LOAD_FAILED,
        grpc.StatusCode.INTERNAL,
        500,
        "failed to load model resources",
    ),
    ErrorCode.MODEL_NOT_FOUND: ErrorSpec(
        ErrorCode.MODEL_NOT_FOUND,
        grpc.StatusCode.NOT_FOUND,
        404,
        "model is not loaded",
    ),
    ErrorCode.SESSION_NOT_ACTIVE: ErrorSpec(
        ErrorCode.SESSION_NOT_ACTIVE,
        grpc.StatusCode.FAILED_PRECONDITION,
        409,
        "decoder session is not active",
    ),
    ErrorCode.SESSION_RELEASE_INVALID: ErrorSpec(
        ErrorCode.SESSION_RELEASE_INVALID,
        grpc.StatusCode.FAILED_PRECONDITION,
        409,
        "decoder session is not checked out from this pool",
    ),
    ErrorCode.POOL_CLOSED: ErrorSpec(
        ErrorCode.POOL_CLOSED,
        grpc.StatusCode.UNAVAILABLE,
        503,
        "decoder pool is closed",
    ),
    ErrorCode.SAMPLE_RATE_INVALID: ErrorSpec(
        ErrorCode.SAMPLE_RATE_INVALID,
        grpc.StatusCode.INVALID_ARGUMENT,
        400,
        "sample_rate must be positive",
    ),
    ErrorCode.DECODE_OPTION_INVALID: ErrorSpec(
        ErrorCode.DECODE_OPTION_INVALID,
        grpc.StatusCode.INVALID_ARGUMENT,
        400,
        "invalid decode option",
    ),
    ErrorCode.AUDIO_INVALID: ErrorSpec(
        ErrorCode.AUDIO_INVALID,
        grpc.StatusCode.INVALID_ARGUMENT,
        400,
        "audio data could not be read",
    ),
    ErrorCode.LATTICE_EXTRACTION_FAILED: ErrorSpec(
        ErrorCode.LATTICE_EXTRACTION_FAILED,
        grpc.StatusCode.INTERNAL,
        500,
        "unexpected error while extracting the decoded lattice",
    ),
}


def status_for(code: ErrorCode) -> grpc.StatusCode:
    return ERROR_SPECS[code].status


def http_status_for(code: ErrorCode) -> int:
    return ERROR_SPECS[code].http_status


def _message(code: ErrorCode, detail: Optional[str]) -> str:
    return detail or ERROR_SPECS[code].message


def format_error(code: ErrorCode, detail: Optional[str] = None) -> str:
    """``"ERRxxxx <message>"``; ``detail`` replaces the default message."""
    return f"{code.value} {_message(code, detail)}"


def payload_for(code: ErrorCode, detail: Optional[str] = None) -> dict[str, str]:
    """JSON-ready form of an error, as printed by the CLI."""
    return {"code": code.value, "message": _message(code, detail)}


class STTError(RuntimeError):
    """Decoding-core failure tagged with an ErrorCode and its statuses."""

    def __init__(self, code: ErrorCode, detail: Optional[str] = None) -> None:
        self.code = code
        self.detail = _message(code, detail)
        self.status = status_for(code)
        self.http_status = http_status_for(code)
        super().__init__(format_error(code, detail))


__all__ = [
    "ERROR_SPECS",
    "ErrorCode",
    "ErrorSpec",
    "STTError",
    "format_error",
    "http_status_for",
    "payload_for",
    "status_for",
]

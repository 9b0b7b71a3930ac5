"""
Binary wire format for master/worker messages.

Every message is a frame: one kind byte followed by a kind-specific body.
All numbers are little-endian.

PARAMETERS  int32 n | float64 ρ | float64[n] σ | float64[n] trend | float64[n] spot | float64 r
RUN         int64 total trials | float64 t | int32 rows | int32 cols | float64[rows·cols] past
RESULT      float64 sum | float64 sum_square
STOP        (empty)
ERROR       UTF-8 reason
ABORT       UTF-8 reason

Decoders check declared sizes against the received length before reading
any dependent field and raise CommunicationError on mismatch.
"""

import struct
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from basket_pricing.errors import CommunicationError, ConfigurationError
from basket_pricing.options.simulation.model import ModelParameters

_INT32 = struct.Struct("<i")
_FLOAT64 = struct.Struct("<d")
_RUN_HEADER = struct.Struct("<qdii")
_RESULT = struct.Struct("<dd")


class FrameKind(Enum):
    """Message kinds exchanged between ranks."""

    PARAMETERS = b"P"
    RUN = b"R"
    RESULT = b"S"
    STOP = b"Q"
    ERROR = b"E"
    ABORT = b"A"


def encode_frame(kind: FrameKind, body: bytes = b"") -> bytes:
    return kind.value + body


def decode_frame(frame: bytes) -> tuple[FrameKind, bytes]:
    """Split a frame into its kind and body."""
    if not frame:
        raise CommunicationError("CRITICAL: received an empty frame")
    try:
        kind = FrameKind(frame[:1])
    except ValueError:
        raise CommunicationError(f"CRITICAL: unknown frame kind {frame[:1]!r}") from None
    return kind, frame[1:]


# =============================================================================
# Model parameters
# =============================================================================


def parameters_size(n_assets: int) -> int:
    """Body length of a PARAMETERS frame for n assets."""
    return _INT32.size + _FLOAT64.size * (3 * n_assets + 2)


def encode_parameters(params: ModelParameters) -> bytes:
    """Pack model parameters in the fixed field order."""
    return b"".join(
        [
            _INT32.pack(params.size),
            _FLOAT64.pack(params.correlation),
            np.ascontiguousarray(params.volatility, dtype="<f8").tobytes(),
            np.ascontiguousarray(params.trend, dtype="<f8").tobytes(),
            np.ascontiguousarray(params.spot, dtype="<f8").tobytes(),
            _FLOAT64.pack(params.rate),
        ]
    )


def decode_parameters(body: bytes) -> ModelParameters:
    """
    Unpack model parameters, mirroring ``encode_parameters``.

    Raises
    ------
    CommunicationError
        If the body is shorter or longer than its declared asset count implies
    """
    if len(body) < _INT32.size:
        raise CommunicationError(
            f"CRITICAL: parameter payload too short for asset count ({len(body)} bytes)"
        )
    (n_assets,) = _INT32.unpack_from(body, 0)
    if n_assets < 1:
        raise CommunicationError(f"CRITICAL: parameter payload declares {n_assets} assets")
    expected = parameters_size(n_assets)
    if len(body) != expected:
        raise CommunicationError(
            f"CRITICAL: parameter payload declares {n_assets} assets ({expected} bytes), "
            f"received {len(body)} bytes"
        )

    offset = _INT32.size
    (rho,) = _FLOAT64.unpack_from(body, offset)
    offset += _FLOAT64.size
    vectors = []
    for _ in range(3):
        vectors.append(np.frombuffer(body, dtype="<f8", count=n_assets, offset=offset).copy())
        offset += _FLOAT64.size * n_assets
    (rate,) = _FLOAT64.unpack_from(body, offset)

    volatility, trend, spot = vectors
    return ModelParameters(
        size=n_assets,
        spot=spot,
        volatility=volatility,
        correlation=rho,
        rate=rate,
        trend=trend,
    )


# =============================================================================
# Round commands and results
# =============================================================================


@dataclass(frozen=True)
class RunCommand:
    """
    One pricing round broadcast by the master.

    Attributes
    ----------
    total_trials : int
        Trials of the whole round; each rank derives its own share
    t : float
        Observation time
    past : np.ndarray, optional
        Observed trajectory, None to price from t = 0
    """

    total_trials: int
    t: float = 0.0
    past: Optional[np.ndarray] = None


def encode_run(command: RunCommand) -> bytes:
    if command.past is None:
        rows, cols, payload = 0, 0, b""
    else:
        past = np.ascontiguousarray(command.past, dtype="<f8")
        if past.ndim != 2:
            raise ConfigurationError(f"CRITICAL: past must be 2-D, got shape {past.shape}")
        rows, cols = past.shape
        payload = past.tobytes()
    return _RUN_HEADER.pack(command.total_trials, command.t, rows, cols) + payload


def decode_run(body: bytes) -> RunCommand:
    if len(body) < _RUN_HEADER.size:
        raise CommunicationError(f"CRITICAL: run payload too short ({len(body)} bytes)")
    total_trials, t, rows, cols = _RUN_HEADER.unpack_from(body, 0)
    if total_trials < 0 or rows < 0 or cols < 0:
        raise CommunicationError(
            f"CRITICAL: run payload has negative sizes (trials={total_trials}, past={rows}x{cols})"
        )
    expected = _RUN_HEADER.size + _FLOAT64.size * rows * cols
    if len(body) != expected:
        raise CommunicationError(
            f"CRITICAL: run payload declares past {rows}x{cols} ({expected} bytes), "
            f"received {len(body)} bytes"
        )
    past = None
    if rows > 0:
        past = np.frombuffer(body, dtype="<f8", count=rows * cols, offset=_RUN_HEADER.size)
        past = past.reshape(rows, cols).copy()
    return RunCommand(total_trials=total_trials, t=t, past=past)


def encode_result(sum_: float, sum_square: float) -> bytes:
    return _RESULT.pack(sum_, sum_square)


def decode_result(body: bytes) -> tuple[float, float]:
    if len(body) != _RESULT.size:
        raise CommunicationError(
            f"CRITICAL: result payload must be {_RESULT.size} bytes, received {len(body)}"
        )
    return _RESULT.unpack(body)


def encode_reason(reason: str) -> bytes:
    return reason.encode("utf-8", errors="replace")


def decode_reason(body: bytes) -> str:
    return body.decode("utf-8", errors="replace")

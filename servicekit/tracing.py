"""Trace ids carried in the current context and a sampler that skips endpoints."""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from contextvars import ContextVar
from typing import Any, Union

ZERO_TRACE_ID = "00000000000000000000000000000000"

_TARGET_KEY = "http.target"

_trace_id: ContextVar[str] = ContextVar("servicekit_trace_id")


def get_trace_id() -> str:
    """Return the trace id of the current context, or the all-zero id."""
    return _trace_id.get(ZERO_TRACE_ID)


def inject_trace_id(trace_id: str = ZERO_TRACE_ID) -> str:
    """Store trace_id in the current context and return it.

    An empty or all-zero id is replaced by a fresh UUID.
    """
    if not trace_id or trace_id == ZERO_TRACE_ID:
        trace_id = str(uuid.uuid4())
    _trace_id.set(trace_id)
    return trace_id


def _trace_id_bytes(trace_id: Union[bytes, str, int]) -> bytes:
    if isinstance(trace_id, (bytes, bytearray)):
        data = bytes(trace_id)
    elif isinstance(trace_id, str):
        try:
            data = bytes.fromhex(trace_id)
        except ValueError:
            raise ValueError(f"invalid trace id {trace_id!r}") from None
    elif isinstance(trace_id, int):
        data = trace_id.to_bytes(16, "big")
    else:
        raise TypeError(f"invalid trace id type {type(trace_id).__name__}")
    if len(data) != 16:
        raise ValueError("trace id must be 16 bytes")
    return data


def _ratio_sample(probability: float, trace_id: bytes) -> bool:
    if probability >= 1:
        return True
    if probability <= 0:
        probability = 0.0
    bound = int(probability * (1 << 63))
    x = int.from_bytes(trace_id[8:16], "big") >> 1
    return x < bound


class EndpointExcluder:
    """A sampler that drops requests to the given endpoints.

    Other requests are sampled by the ratio of their trace id.
    """

    def __init__(self, endpoints: Iterable[str], probability: float) -> None:
        self._endpoints = frozenset(endpoints)
        self._probability = probability

    def should_sample(
        self,
        trace_id: Union[bytes, str, int],
        attributes: Union[Mapping[str, Any], Iterable[tuple[str, Any]]] = (),
    ) -> bool:
        """Return True to record and sample the span, False to drop it."""
        items = attributes.items() if isinstance(attributes, Mapping) else attributes
        for key, value in items:
            if key == _TARGET_KEY:
                target = value if isinstance(value, str) else ""
                if target in self._endpoints:
                    return False
        return _ratio_sample(self._probability, _trace_id_bytes(trace_id))

    def description(self) -> str:
        return "customSampler"
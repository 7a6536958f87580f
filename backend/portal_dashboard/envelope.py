"""Resolution of the two response shapes returned by the portal backend.

Endpoints are inconsistent: some answer with the payload itself (``[...]`` or
``{...}``), others wrap it as ``{"data": ..., "success": true, ...}``. The real
contract is unknown per endpoint, so every result goes through
:func:`classify_payload` and is handled as one of two explicit cases.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from .errors import UpstreamError

ENVELOPE_KEY = "data"


@dataclass(frozen=True)
class EnvelopeWrapped:
    data: Any
    meta: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Bare:
    data: Any


Payload = Union[EnvelopeWrapped, Bare]


def classify_payload(payload: Any) -> Payload:
    """Tag a decoded JSON body as envelope-wrapped or bare."""

    if isinstance(payload, Mapping) and ENVELOPE_KEY in payload:
        meta = {key: value for key, value in payload.items() if key != ENVELOPE_KEY}
        return EnvelopeWrapped(data=payload[ENVELOPE_KEY], meta=meta)
    return Bare(data=payload)


def _failure_message(body: Mapping[str, Any]) -> str:
    for key in ("message", "error", "detail"):
        value = body.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        if isinstance(value, Mapping) and isinstance(value.get("message"), str):
            return value["message"]
    return ""


def unwrap(payload: Any) -> Any:
    """Return the inner data of either shape.

    A body flagged ``"success": false`` is a failure reported with a 2xx status
    and raises :class:`UpstreamError`.
    """

    if isinstance(payload, Mapping) and payload.get("success") is False:
        raise UpstreamError(_failure_message(payload))
    return classify_payload(payload).data


__all__ = ["EnvelopeWrapped", "Bare", "Payload", "classify_payload", "unwrap"]

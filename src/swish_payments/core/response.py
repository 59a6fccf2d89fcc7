"""
Immutable view of one completed HTTP exchange.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

import requests

__all__ = ["ResponseEnvelope"]

HeaderValues = Union[str, Iterable[str]]


def _freeze_headers(headers: Mapping[str, HeaderValues]) -> Mapping[str, Tuple[str, ...]]:
    frozen: Dict[str, Tuple[str, ...]] = {}
    for name, values in headers.items():
        if isinstance(values, str):
            frozen[name] = (values,)
        else:
            frozen[name] = tuple(values)
    return MappingProxyType(frozen)


@dataclass(frozen=True)
class ResponseEnvelope:
    status_code: int
    headers: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    body: bytes = b""

    def __post_init__(self) -> None:
        if not 100 <= self.status_code <= 599:
            raise ValueError(f"Invalid HTTP status code: {self.status_code}")
        object.__setattr__(self, "headers", _freeze_headers(self.headers))
        if isinstance(self.body, str):
            object.__setattr__(self, "body", self.body.encode("utf-8"))
        else:
            object.__setattr__(self, "body", bytes(self.body))

    @classmethod
    def from_requests(cls, response: requests.Response) -> "ResponseEnvelope":
        """
        Capture a :class:`requests.Response`, keeping repeated header values apart.
        """
        raw_headers = getattr(response.raw, "headers", None)
        headers: Dict[str, Tuple[str, ...]] = {}
        if raw_headers is not None and hasattr(raw_headers, "getlist"):
            for name in raw_headers.keys():
                headers[name] = tuple(raw_headers.getlist(name))
        else:
            for name, value in response.headers.items():
                headers[name] = (value,)
        return cls(
            status_code=response.status_code,
            headers=headers,
            body=response.content or b"",
        )

    def json(self) -> Optional[Dict[str, Any]]:
        """
        Decode the body as a JSON object.

        Returns ``None`` for an empty body, invalid JSON, or any root that is
        not an object.
        """
        if not self.body:
            return None
        try:
            decoded = json.loads(self.body)
        except (ValueError, UnicodeDecodeError):
            return None
        return decoded if isinstance(decoded, dict) else None

    def header(self, name: str) -> Optional[str]:
        wanted = name.lower()
        for key, values in self.headers.items():
            if key.lower() == wanted and values:
                return values[0]
        return None

    def is_successful(self) -> bool:
        return 200 <= self.status_code < 300

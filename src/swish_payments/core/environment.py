"""
Resolve the ``SWISH_*`` settings used to configure the client.

Values can come from the process environment, a ``.env`` file and explicit
overrides. The result is a plain mapping fed into
:meth:`swish_payments.core.config.ClientConfig.from_mapping`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, MutableMapping, Optional

ENV_PREFIX = "SWISH_"


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def parse_env_text(text: str) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue
        values[key] = _strip_quotes(value.strip())
    return values


def _read_env_file(path: Path) -> Dict[str, str]:
    try:
        data = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    return parse_env_text(data)


def load_env_file(
    path: str = ".env",
    *,
    environ: Optional[MutableMapping[str, str]] = None,
) -> Dict[str, str]:
    """
    Copy the entries of ``path`` into ``environ`` without replacing existing keys.

    A missing file is not an error. The merged mapping is returned.
    """
    target: MutableMapping[str, str] = environ if environ is not None else os.environ
    for key, value in _read_env_file(Path(path)).items():
        target.setdefault(key, value)
    return dict(target)


@dataclass(frozen=True)
class ResolvedEnvironment:
    """The merged settings, restricted to the ``SWISH_`` namespace."""

    variables: Mapping[str, str]

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.variables.get(key, default)


def build_environment(
    *,
    env_file: Optional[str] = ".env",
    base: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, str]] = None,
) -> ResolvedEnvironment:
    """
    Layer ``base`` (default :data:`os.environ`), ``env_file`` and ``overrides``.

    Process variables win over the file; ``overrides`` win over both. Pass
    ``env_file=None`` to skip the file.
    """
    source = os.environ if base is None else base
    merged: Dict[str, str] = {
        key: value for key, value in source.items() if key.startswith(ENV_PREFIX)
    }

    if env_file is not None:
        for key, value in _read_env_file(Path(env_file)).items():
            if key.startswith(ENV_PREFIX):
                merged.setdefault(key, value)

    if overrides:
        merged.update(overrides)

    return ResolvedEnvironment(variables=merged)

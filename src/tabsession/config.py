# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Timeouts and limits shared by the tab session components.

Leaf module. Every value can be overridden through ``TABSESSION_*``
environment variables via :meth:`TabConfig.from_env`.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field, fields
from pathlib import Path

_ENV_PREFIX = "TABSESSION_"


def _default_output_dir() -> Path:
    return Path(tempfile.gettempdir()) / "tabsession-output"


@dataclass(frozen=True, slots=True)
class TabConfig:
    """Per-tab timing configuration (all durations in milliseconds)."""

    default_timeout_ms: int = 5000
    navigation_timeout_ms: int = 60000
    navigation_check_interval_ms: int = 100
    stale_navigation_ms: int = 10000
    load_state_timeout_ms: int = 5000
    download_grace_ms: int = 1000  # chromium fires "download" after goto rejects
    download_settle_ms: int = 500
    completion_timeout_ms: int = 10000
    completion_settle_ms: int = 1000
    selector_timeout_ms: int = 3000
    selector_concurrency: int = 5
    output_dir: Path = field(default_factory=_default_output_dir)

    def __post_init__(self) -> None:
        for f in fields(self):
            if f.name == "output_dir":
                continue
            value = getattr(self, f.name)
            if value < 0:
                raise ValueError(f"{f.name} must be >= 0, got {value}")
        if self.navigation_check_interval_ms == 0:
            raise ValueError("navigation_check_interval_ms must be > 0")
        if self.selector_concurrency < 1:
            raise ValueError("selector_concurrency must be >= 1")

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides) -> TabConfig:
        """Build a config from ``TABSESSION_<FIELD>`` variables.

        Explicit keyword overrides win over the environment.
        """
        env = os.environ if environ is None else environ
        values: dict = {}
        for f in fields(cls):
            raw = env.get(_ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            if f.name == "output_dir":
                values[f.name] = Path(raw).expanduser()
            else:
                try:
                    values[f.name] = int(raw)
                except ValueError:
                    raise ValueError(f"{_ENV_PREFIX}{f.name.upper()} must be an integer, got {raw!r}") from None
        values.update(overrides)
        return cls(**values)

    # Seconds helpers for asyncio APIs
    @property
    def check_interval_s(self) -> float:
        return self.navigation_check_interval_ms / 1000

    @property
    def navigation_settle_s(self) -> float:
        return self.default_timeout_ms / 1000

    @property
    def stale_navigation_s(self) -> float:
        return self.stale_navigation_ms / 1000

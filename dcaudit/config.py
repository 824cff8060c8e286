"""Runtime configuration for the audit tools."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class AuditConfig:
    verbose: bool = False
    log_level: str = "INFO"
    encoding: str = "utf-8"

    @classmethod
    def from_env(cls) -> "AuditConfig":
        verbose = os.getenv("DCAUDIT_VERBOSE", "").strip().lower() in _TRUTHY
        log_level = os.getenv("DCAUDIT_LOG_LEVEL", "INFO").strip().upper() or "INFO"
        encoding = os.getenv("DCAUDIT_ENCODING", "utf-8").strip() or "utf-8"
        return cls(verbose=verbose, log_level=log_level, encoding=encoding)

    def with_overrides(self, **overrides: object) -> "AuditConfig":
        """Return a copy with every non-``None`` override applied."""

        values = {name: value for name, value in overrides.items() if value is not None}
        return replace(self, **values)

    def logging_level(self) -> int:
        level = logging.getLevelName(self.log_level)
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {self.log_level}")
        return level

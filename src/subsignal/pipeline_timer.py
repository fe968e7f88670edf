# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Per-stage latency tracking for one detection call.

Stages: normalize -> gateway (email only) -> extract -> context -> score -> assemble.
The engine logs the timings at debug level once the call finishes.
"""

from __future__ import annotations

import time
from dataclasses import dataclass


@dataclass(slots=True)
class StageRecord:
    name: str
    start_ns: int
    end_ns: int = 0


class PipelineTimer:
    """Track stage transitions within one detection call."""

    __slots__ = ("_stages", "_current", "_start_ns", "_end_ns")

    def __init__(self) -> None:
        self._stages: list[StageRecord] = []
        self._current: StageRecord | None = None
        self._start_ns: int = time.monotonic_ns()
        self._end_ns: int = 0

    def stage(self, name: str) -> None:
        """End previous stage + start new stage."""
        now = time.monotonic_ns()
        if self._current is not None:
            self._current.end_ns = now
            self._stages.append(self._current)
        self._current = StageRecord(name=name, start_ns=now)

    def finalize(self) -> None:
        """End current stage. Call on success or error."""
        now = time.monotonic_ns()
        if self._current is not None:
            self._current.end_ns = now
            self._stages.append(self._current)
            self._current = None
        self._end_ns = now

    @property
    def current_stage(self) -> str | None:
        return self._current.name if self._current else None

    @property
    def stage_names(self) -> tuple[str, ...]:
        names = [s.name for s in self._stages]
        if self._current is not None:
            names.append(self._current.name)
        return tuple(names)

    def elapsed_per_stage(self) -> dict[str, float]:
        """Return {stage_name: elapsed_ms} for all stages (including current)."""
        now = time.monotonic_ns()
        result: dict[str, float] = {}
        for s in self._stages:
            result[s.name] = round(result.get(s.name, 0.0) + (s.end_ns - s.start_ns) / 1e6, 3)
        if self._current is not None:
            name = self._current.name
            result[name] = round(result.get(name, 0.0) + (now - self._current.start_ns) / 1e6, 3)
        return result

    def total_ms(self) -> float:
        end = self._end_ns or time.monotonic_ns()
        return round((end - self._start_ns) / 1e6, 3)

    def summary(self) -> dict[str, object]:
        """Stage timings plus the total, for structured debug logs."""
        return {"stages_ms": self.elapsed_per_stage(), "total_ms": self.total_ms()}

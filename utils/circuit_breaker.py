#!/usr/bin/env python3
"""File-backed circuit breaker guarding the generation service.

State survives across runs so repeated CI invocations stop calling a
service that keeps failing, and fall straight through to deterministic
output until the recovery window passes.
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Literal

logger = logging.getLogger(__name__)

State = Literal["CLOSED", "OPEN", "HALF_OPEN"]


@dataclass
class CBConfig:
    failure_threshold: int = 5
    recovery_time_s: int = 120
    half_open_max_calls: int = 1
    state_root: str = ".cache/changelog/cb"


def _fresh() -> Dict:
    return {"state": "CLOSED", "failures": 0, "ts_open": 0, "half_open_calls": 0}


class CircuitBreaker:
    """CLOSED -> OPEN after N consecutive failures; OPEN -> HALF_OPEN after
    the recovery window; a HALF_OPEN probe success closes, a failure reopens.
    """

    def __init__(self, name: str, cfg: CBConfig, clock: Callable[[], float] = time.time):
        self.name = name
        self.cfg = cfg
        self._clock = clock

    @property
    def path(self) -> Path:
        safe = self.name.replace("/", "#").replace(os.sep, "#")
        return Path(self.cfg.state_root) / f"{safe}.cb.json"

    def _load(self) -> Dict:
        if not self.path.exists():
            return _fresh()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning(f"Unreadable breaker state at {self.path}; starting CLOSED")
            return _fresh()
        return {**_fresh(), **data}

    def _save(self, data: Dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(json.dumps(data, separators=(",", ":")))
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self.path)

    def state(self) -> State:
        return self._load()["state"]

    def allow(self) -> bool:
        data = self._load()
        if data["state"] == "OPEN":
            if self._clock() - float(data["ts_open"]) < self.cfg.recovery_time_s:
                return False
            data.update({"state": "HALF_OPEN", "half_open_calls": 0})
        if data["state"] == "HALF_OPEN":
            if int(data["half_open_calls"]) >= self.cfg.half_open_max_calls:
                return False
            data["half_open_calls"] = int(data["half_open_calls"]) + 1
            self._save(data)
        return True

    def record_success(self) -> None:
        if self._load() != _fresh():
            self._save(_fresh())

    def record_failure(self) -> None:
        data = self._load()
        data["failures"] = int(data["failures"]) + 1
        if data["state"] == "HALF_OPEN" or data["failures"] >= self.cfg.failure_threshold:
            data.update({"state": "OPEN", "ts_open": self._clock(), "half_open_calls": 0})
            logger.warning(f"Circuit {self.name!r} opened after {data['failures']} failures")
        self._save(data)

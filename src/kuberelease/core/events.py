#!/usr/bin/env python3
"""
KUBERELEASE EVENTS
------------------
The engine reports what it does through a caller-supplied sink instead of
writing to a logger from inside its decision logic. The default sink
forwards events to stdlib logging so command-line use still gets output.

Author: KubeRelease Team
Date: 2026-10-18
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("kuberelease.events")

DEBUG = logging.DEBUG
INFO = logging.INFO
WARNING = logging.WARNING
ERROR = logging.ERROR


@dataclass
class ReleaseEvent:
    level: int
    message: str
    release: Optional[str] = None
    fields: Dict[str, Any] = field(default_factory=dict)

    @property
    def level_name(self) -> str:
        return logging.getLevelName(self.level)


EventSink = Callable[[ReleaseEvent], None]


def log_event(event: ReleaseEvent) -> None:
    """Default sink: one log record per event, extra fields appended."""
    extra = " ".join(f"{k}={v}" for k, v in event.fields.items())
    prefix = f"[{event.release}] " if event.release else ""
    logger.log(event.level, f"{prefix}{event.message}" + (f" ({extra})" if extra else ""))


class EventRecorder:
    """Sink that keeps every event in memory. Handy for tests and reports."""

    def __init__(self):
        self.events = []

    def __call__(self, event: ReleaseEvent) -> None:
        self.events.append(event)

    def messages(self, level: Optional[int] = None):
        return [e.message for e in self.events if level is None or e.level == level]

#!/usr/bin/env python3
"""
KUBERELEASE ERRORS
------------------
Exception taxonomy for the lifecycle engine.

InputError and its subclasses abort before any remote call. RemoteError
wraps package-manager failures. StateConflictError signals a delete racing
an in-flight transition. PartialParseError is never raised to callers; it
is carried to the event sink and to annotation reports.

Author: KubeRelease Team
Date: 2026-10-18
"""

from typing import Any, Optional


class ReleaseError(Exception):
    """Base class for every error raised by kuberelease."""


class InputError(ReleaseError):
    """Bad caller input: chart path, value source, action or descriptor."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(message)


class ChartNotFoundError(InputError):
    """The chart path does not exist on the local filesystem."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(path, f"no file or dir at path to chart: {path}")


class RemoteError(ReleaseError):
    """A package-manager or cluster API call failed."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(message)


class StateConflictError(ReleaseError):
    """Delete requested while the release is mid-transition."""

    def __init__(self, release: str, status: Any):
        self.release = release
        self.status = status
        label = getattr(status, "name", status)
        super().__init__(f"release {release} with status {label} cannot be deleted")


class PartialParseError(ReleaseError):
    """A single manifest document or namespace batch failed; recovered locally."""

    def __init__(self, reason: str, index: Optional[int] = None, namespace: Optional[str] = None):
        self.reason = reason
        self.index = index
        self.namespace = namespace
        where = f"document {index}" if index is not None else f"namespace {namespace}"
        super().__init__(f"{where}: {reason}")

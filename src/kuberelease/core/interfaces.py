#!/usr/bin/env python3
"""
KUBERELEASE COLLABORATOR CONTRACTS
----------------------------------
Structural types for everything the engine talks to but does not own.
Implementations are supplied by the caller; kuberelease.cluster.kube and
kuberelease.values.sources carry the default ones.

Author: KubeRelease Team
Date: 2026-10-18
"""

from typing import Dict, List, Protocol, Sequence

from kuberelease.core.models import Release


class PackageManagerClient(Protocol):
    """Install/Update/Delete/History/Status surface of the package manager."""

    def release_content(self, name: str) -> Release: ...

    def release_status(self, name: str) -> Release: ...

    def release_history(self, name: str, max_history: int) -> List[Release]: ...

    def install_release(self, chart_path: str, namespace: str, values: str, *,
                        release_name: str, dry_run: bool, reuse_name: bool,
                        timeout: int) -> Release: ...

    def update_release(self, release_name: str, chart_path: str, values: str, *,
                       dry_run: bool, timeout: int, reset_values: bool,
                       force: bool) -> Release: ...

    def delete_release(self, name: str, purge: bool = True) -> None: ...


class ConfigLoader(Protocol):
    """Returns raw bytes for a local path or remote locator."""

    def load(self, ref: str) -> bytes: ...


class SecretAccessor(Protocol):
    """Returns a named secret's decoded data, keyed by data key."""

    def get_secret_data(self, namespace: str, name: str) -> Dict[str, bytes]: ...


class MutationExecutor(Protocol):
    """Applies one bulk annotation to resources within a single namespace."""

    def annotate(self, namespace: str, resources: Sequence[str], key: str,
                 value: str, timeout: float) -> None: ...

#!/usr/bin/env python3
"""
KUBERELEASE ENGINE - Release Lifecycle Manager
----------------------------------------------
The ReleaseManager drives a release through install, upgrade and delete
against the package manager. It owns the two pieces of policy in the
system:

1. Install failure recovery: when the very first install of a release
   fails, the failed release is purged so the next attempt can reuse the
   name. Upgrades are never purged.
2. Deletability: a release may only be deleted from a settled state
   (Deployed or Failed). Deleted is a no-op; anything mid-transition is a
   conflict.

Successful, non-dry-run installs and upgrades finish by tagging every
object in the rendered manifest with the owning HelmRelease.

The manager holds no per-release locks. Callers serialize operations on
the same release name.

Wiring against a live cluster (connection setup is the caller's job):

    api = kubernetes.client.ApiClient()
    manager = ReleaseManager(helm,
                             secrets=KubeSecretAccessor(api),
                             executor=KubeAnnotationExecutor(api))

with KubeSecretAccessor and KubeAnnotationExecutor from kuberelease.cluster.kube.

Author: KubeRelease Team
Date: 2026-10-18
"""

from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Union

from kuberelease.core import events
from kuberelease.core.errors import (
    ChartNotFoundError,
    InputError,
    ReleaseError,
    RemoteError,
    StateConflictError,
)
from kuberelease.core.events import EventSink, ReleaseEvent, log_event
from kuberelease.core.interfaces import (
    ConfigLoader,
    MutationExecutor,
    PackageManagerClient,
    SecretAccessor,
)
from kuberelease.core.models import (
    Action,
    InstallOptions,
    ManagerConfig,
    Release,
    ReleaseDescriptor,
    ReleaseStatus,
)
from kuberelease.manifest.annotator import AnnotationReport, ResourceAnnotator
from kuberelease.manifest.parser import iter_objects
from kuberelease.values.sources import ValueFileLoader, ValuesComposer, dump_values

# Two entries are enough to tell a first failed install from a later one
HISTORY_WINDOW = 2

# (deletable, conflict) for every status in the closed set
_DELETE_POLICY: Dict[ReleaseStatus, Tuple[bool, bool]] = {
    ReleaseStatus.DEPLOYED: (True, False),
    ReleaseStatus.FAILED: (True, False),
    ReleaseStatus.DELETED: (False, False),
    ReleaseStatus.SUPERSEDED: (False, True),
    ReleaseStatus.DELETING: (False, True),
    ReleaseStatus.PENDING_INSTALL: (False, True),
    ReleaseStatus.PENDING_UPGRADE: (False, True),
    ReleaseStatus.PENDING_ROLLBACK: (False, True),
    ReleaseStatus.UNKNOWN: (False, True),
}


def deletability(name: str, status: ReleaseStatus) -> Tuple[bool, Optional[StateConflictError]]:
    """Pure decision: may `name` be purged while in `status`?"""
    deletable, conflict = _DELETE_POLICY[status]
    if conflict:
        return False, StateConflictError(name, status)
    return deletable, None


class ReleaseManager:
    """
    Principal orchestrator for release lifecycle operations.
    Composes the values composer, manifest parser and resource annotator
    around a shared package-manager client.
    """

    def __init__(self, helm: PackageManagerClient,
                 composer: Optional[ValuesComposer] = None,
                 annotator: Optional[ResourceAnnotator] = None,
                 config: Optional[ManagerConfig] = None,
                 sink: EventSink = log_event,
                 loader: Optional[ConfigLoader] = None,
                 secrets: Optional[SecretAccessor] = None,
                 executor: Optional[MutationExecutor] = None):
        self.helm = helm
        self.config = config or ManagerConfig()
        self.sink = sink

        if composer is None:
            composer = ValuesComposer(loader or ValueFileLoader(timeout=self.config.http_timeout),
                                      secrets, secret_key=self.config.values_secret_key,
                                      sink=sink)
        self.composer = composer

        # Without an executor the manager installs but never tags
        if annotator is None and executor is not None:
            annotator = ResourceAnnotator(executor,
                                          key=self.config.annotation_key,
                                          timeout=self.config.annotation_timeout,
                                          sink=sink)
        self.annotator = annotator

    # ------------------------------------------------------------------ queries

    def get_deployed_release(self, name: str) -> Optional[Release]:
        """Returns the release only when its status is exactly Deployed."""
        rls = self._call("release content", self.helm.release_content, name)
        if ReleaseStatus.decode(rls.status) is ReleaseStatus.DEPLOYED:
            return rls
        return None

    def can_delete(self, name: str) -> Tuple[bool, Optional[StateConflictError]]:
        try:
            rls = self._call("release status", self.helm.release_status, name)
        except RemoteError as e:
            self._emit(events.ERROR, f"error finding status for release: {e}", name)
            raise

        status = ReleaseStatus.decode(rls.status)
        ok, err = deletability(name, status)
        if ok:
            self._emit(events.INFO, f"deleting release {name}", name)
        elif err is None:
            self._emit(events.INFO, f"release {name} already deleted", name)
        else:
            self._emit(events.INFO, str(err), name)
        return ok, err

    # ---------------------------------------------------------------- mutations

    def delete(self, name: str) -> None:
        """Purges a release. Already-deleted releases are a no-op."""
        ok, err = self.can_delete(name)
        if not ok:
            if err is not None:
                raise err
            return

        try:
            self._call("delete", self.helm.delete_release, name, purge=True)
        except RemoteError as e:
            self._emit(events.ERROR, f"release deletion error: {e}", name)
            raise
        self._emit(events.INFO, f"release deleted: {name}", name)

    def install(self, chart_path: str, release_name: str, descriptor: ReleaseDescriptor,
                action: Union[Action, str], options: InstallOptions = InstallOptions()) -> Release:
        """
        Installs or upgrades `release_name` from the chart at `chart_path`.

        Raises InputError (before any remote call) for a bad chart path,
        an unsupported action or an unusable value source, and RemoteError
        when the package manager rejects the operation.
        """
        self._check_chart(chart_path, descriptor)
        action = self._check_action(action, release_name)
        timeout = descriptor.get_timeout(self.config.default_timeout)

        self._emit(events.INFO,
                   f"processing release {descriptor.name} (as {release_name})",
                   release_name, action=action.value, options=options, timeout=f"{timeout}s")

        values = dump_values(self.composer.compose(descriptor))

        if action is Action.INSTALL:
            rls = self._install(chart_path, release_name, descriptor, values, options, timeout)
        else:
            rls = self._upgrade(chart_path, release_name, descriptor, values, options, timeout)

        if not options.dry_run:
            self.annotate(rls, descriptor)
        return rls

    def annotate(self, rls: Release, descriptor: ReleaseDescriptor) -> Optional[AnnotationReport]:
        """Tags the release's objects. Never fails the enclosing operation."""
        if self.annotator is None:
            return None
        objs = iter_objects(rls.manifest, sink=self.sink, release=rls.name)
        namespace = rls.namespace or descriptor.effective_namespace
        return self.annotator.annotate(objs, namespace, descriptor, release=rls.name)

    # ----------------------------------------------------------------- branches

    def _install(self, chart_path: str, release_name: str, descriptor: ReleaseDescriptor,
                 values: str, options: InstallOptions, timeout: int) -> Release:
        try:
            return self._call(
                "install", self.helm.install_release,
                chart_path, descriptor.effective_namespace, values,
                release_name=release_name,
                dry_run=options.dry_run,
                reuse_name=options.reuse_name,
                timeout=timeout,
            )
        except RemoteError as e:
            self._emit(events.ERROR, f"chart release failed: {e}", release_name)
            self._purge_first_failure(release_name)
            raise

    def _upgrade(self, chart_path: str, release_name: str, descriptor: ReleaseDescriptor,
                 values: str, options: InstallOptions, timeout: int) -> Release:
        try:
            return self._call(
                "upgrade", self.helm.update_release,
                release_name, chart_path, values,
                dry_run=options.dry_run,
                timeout=timeout,
                reset_values=descriptor.reset_values,
                force=descriptor.force_upgrade,
            )
        except RemoteError as e:
            self._emit(events.ERROR, f"chart upgrade release failed: {e}", release_name)
            raise

    def _purge_first_failure(self, release_name: str) -> bool:
        """
        Purges the release when its only revision is the failed one.
        Problems here are reported, never raised: the install error wins.
        """
        try:
            history = self._call("history", self.helm.release_history,
                                 release_name, HISTORY_WINDOW)
            first_failed = (len(history) == 1 and
                            ReleaseStatus.decode(history[0].status) is ReleaseStatus.FAILED)
        except RemoteError as e:
            self._emit(events.WARNING, f"cannot read release history: {e}", release_name)
            return False

        if not first_failed:
            return False

        self._emit(events.INFO, f"deleting failed release: {release_name}", release_name)
        try:
            self._call("delete", self.helm.delete_release, release_name, purge=True)
        except RemoteError as e:
            self._emit(events.ERROR, f"release deletion error: {e}", release_name)
            return False
        return True

    # ------------------------------------------------------------------ helpers

    def _check_chart(self, chart_path: str, descriptor: ReleaseDescriptor):
        if not chart_path:
            raise InputError("chart", f"empty path to chart supplied for resource "
                                      f"{descriptor.resource_id()}")
        try:
            Path(chart_path).stat()
        except FileNotFoundError:
            raise ChartNotFoundError(chart_path)
        except OSError as e:
            raise InputError(chart_path, f"error statting path given for chart {chart_path}: {e}") from e

    def _check_action(self, action: Union[Action, str], release_name: str) -> Action:
        try:
            return Action(action)
        except ValueError:
            err = InputError("action", f"valid install options: CREATE, UPDATE. Provided: {action}")
            self._emit(events.ERROR, str(err), release_name)
            raise err

    def _call(self, operation: str, fn: Callable[..., Any], *args, **kwargs) -> Any:
        try:
            return fn(*args, **kwargs)
        except ReleaseError:
            raise
        except Exception as e:
            raise RemoteError(operation, f"{operation} failed: {e}") from e

    def _emit(self, level: int, message: str, release: str = None, **fields):
        self.sink(ReleaseEvent(level, message, release=release, fields=fields))

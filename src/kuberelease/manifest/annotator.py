#!/usr/bin/env python3
"""
KUBERELEASE RESOURCE ANNOTATOR
------------------------------
Tags every object a release produced with an ownership marker pointing
back at the HelmRelease that owns it.

Objects are grouped by effective namespace (their own, or the release
namespace when empty) and each group gets one bulk mutation. Every group
gets its own worker and all of them share one deadline. Tagging is best
effort: a failed namespace is reported and the rest carry on.

Author: KubeRelease Team
Date: 2026-10-18
"""

from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from kuberelease.core import events
from kuberelease.core.errors import PartialParseError
from kuberelease.core.events import EventSink, ReleaseEvent, log_event
from kuberelease.core.interfaces import MutationExecutor
from kuberelease.core.models import ManagedObject, ReleaseDescriptor


def namespaced_resource_map(objs: Iterable[ManagedObject],
                            release_namespace: str) -> Dict[str, List[str]]:
    """
    Maps effective namespace -> ordered, de-duplicated 'kind/name' ids.
    Cluster-scoped objects (no namespace) land in the release namespace.
    """
    grouped: Dict[str, Dict[str, None]] = {}
    for obj in objs:
        namespace = obj.namespace or release_namespace
        grouped.setdefault(namespace, {})[obj.resource_id] = None
    return {ns: list(ids) for ns, ids in grouped.items()}


@dataclass
class AnnotationReport:
    marker: str
    batches: Dict[str, List[str]] = field(default_factory=dict)
    failures: Dict[str, PartialParseError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def annotated(self) -> List[str]:
        return [ns for ns in self.batches if ns not in self.failures]


class ResourceAnnotator:
    """Applies ownership batches through a MutationExecutor."""

    def __init__(self, executor: MutationExecutor,
                 key: str = "flux.weave.works/antecedent",
                 timeout: float = 10.0,
                 sink: EventSink = log_event):
        self.executor = executor
        self.key = key
        self.timeout = timeout
        self.sink = sink

    def plan(self, objs: Iterable[ManagedObject], release_namespace: str,
             descriptor: ReleaseDescriptor) -> AnnotationReport:
        """Groups objects without touching the cluster."""
        return AnnotationReport(
            marker=descriptor.resource_id(),
            batches=namespaced_resource_map(objs, release_namespace),
        )

    def annotate(self, objs: Iterable[ManagedObject], release_namespace: str,
                 descriptor: ReleaseDescriptor, release: str = None) -> AnnotationReport:
        report = self.plan(objs, release_namespace, descriptor)
        if not report.batches:
            return report

        # Namespaces are disjoint, so one worker each; a hung batch never queues another
        pool = ThreadPoolExecutor(max_workers=len(report.batches),
                                  thread_name_prefix="kuberelease-annotate")
        try:
            futures = {
                ns: pool.submit(self.executor.annotate, ns, ids, self.key,
                                report.marker, self.timeout)
                for ns, ids in report.batches.items()
            }
            _, pending = wait(futures.values(), timeout=self.timeout)
            for ns, future in futures.items():
                if future in pending:
                    self._record(report, ns, release, f"timed out after {self.timeout}s")
                    continue
                err = future.exception()
                if err is not None:
                    self._record(report, ns, release, str(err))
        finally:
            # A hung mutation must not hold the caller
            pool.shutdown(wait=False, cancel_futures=True)

        return report

    def _record(self, report: AnnotationReport, namespace: str, release: str, reason: str):
        err = PartialParseError(reason, namespace=namespace)
        report.failures[namespace] = err
        self.sink(ReleaseEvent(events.WARNING, f"annotation failed for {err}", release=release,
                               fields={"resources": len(report.batches[namespace])}))

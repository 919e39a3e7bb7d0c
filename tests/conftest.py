import threading
from typing import Dict, List, Optional

import pytest

from kuberelease.core.events import EventRecorder
from kuberelease.core.models import Release, ReleaseDescriptor, ReleaseStatus

MANIFEST = """\
---
# Source: app/templates/service.yaml
apiVersion: v1
kind: Service
metadata:
  name: web
spec:
  ports:
  - port: 80
---
apiVersion: apps/v1
kind: Deployment
metadata:
  name: web
  namespace: apps
---
apiVersion: rbac.authorization.k8s.io/v1
kind: ClusterRole
metadata:
  name: web-reader
"""


class FakeHelm:
    """In-memory package manager that records every call."""

    def __init__(self, status=ReleaseStatus.DEPLOYED, manifest=MANIFEST):
        self.calls: List[tuple] = []
        self.status = status
        self.manifest = manifest
        self.history: List[Release] = []
        self.install_error: Optional[Exception] = None
        self.update_error: Optional[Exception] = None
        self.delete_error: Optional[Exception] = None
        self.history_error: Optional[Exception] = None

    def _release(self, name, namespace="flux"):
        return Release(name=name, namespace=namespace, revision=1,
                       status=self.status, manifest=self.manifest)

    def release_content(self, name):
        self.calls.append(("content", name))
        return self._release(name)

    def release_status(self, name):
        self.calls.append(("status", name))
        return self._release(name)

    def release_history(self, name, max_history):
        self.calls.append(("history", name, max_history))
        if self.history_error:
            raise self.history_error
        return self.history[:max_history]

    def install_release(self, chart_path, namespace, values, *, release_name, dry_run,
                        reuse_name, timeout):
        self.calls.append(("install", release_name, dict(chart_path=chart_path, namespace=namespace,
                                                         values=values, dry_run=dry_run,
                                                         reuse_name=reuse_name, timeout=timeout)))
        if self.install_error:
            raise self.install_error
        return self._release(release_name, namespace)

    def update_release(self, release_name, chart_path, values, *, dry_run, timeout,
                       reset_values, force):
        self.calls.append(("update", release_name, dict(chart_path=chart_path, values=values,
                                                        dry_run=dry_run, timeout=timeout,
                                                        reset_values=reset_values, force=force)))
        if self.update_error:
            raise self.update_error
        return self._release(release_name)

    def delete_release(self, name, purge=True):
        self.calls.append(("delete", name, purge))
        if self.delete_error:
            raise self.delete_error

    def called(self, op):
        return [c for c in self.calls if c[0] == op]


class FakeLoader:
    def __init__(self, files: Dict[str, str]):
        self.files = files
        self.loaded: List[str] = []

    def load(self, ref):
        self.loaded.append(ref)
        if ref not in self.files:
            raise FileNotFoundError(ref)
        return self.files[ref].encode()


class FakeSecrets:
    def __init__(self, secrets: Dict[str, Dict[str, bytes]]):
        self.secrets = secrets
        self.requested: List[tuple] = []

    def get_secret_data(self, namespace, name):
        self.requested.append((namespace, name))
        if name not in self.secrets:
            raise LookupError(f"secret {name} not found")
        return self.secrets[name]


class FakeExecutor:
    """Records annotate batches; can fail or hang per namespace."""

    def __init__(self, fail=(), hang=()):
        self.fail = set(fail)
        self.hang = set(hang)
        self.batches: Dict[str, tuple] = {}
        self.release = threading.Event()
        self.lock = threading.Lock()

    def annotate(self, namespace, resources, key, value, timeout):
        if namespace in self.hang:
            self.release.wait(5)
        if namespace in self.fail:
            raise RuntimeError(f"forbidden in {namespace}")
        with self.lock:
            self.batches[namespace] = (list(resources), key, value)


@pytest.fixture
def helm():
    return FakeHelm()


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def descriptor():
    return ReleaseDescriptor(name="web", namespace="flux", values={"replicas": 2})


@pytest.fixture
def chart_dir(tmp_path):
    chart = tmp_path / "chart"
    chart.mkdir()
    (chart / "Chart.yaml").write_text("name: web\nversion: 0.1.0\n")
    return str(chart)

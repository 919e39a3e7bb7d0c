#!/usr/bin/env python3
"""
KUBERELEASE CORE MODELS
-----------------------
Defines the fundamental data structures shared by the release lifecycle
engine: the descriptor a caller hands in, the release record owned by the
package manager, and the transient objects derived from a rendered manifest.

Author: KubeRelease Team
Date: 2026-10-18
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Optional, Tuple

from kuberelease.core.errors import InputError, RemoteError

DEFAULT_NAMESPACE = "default"
DEFAULT_TIMEOUT = 300
OWNER_KIND = "HelmRelease"


class ReleaseStatus(IntEnum):
    """Closed set of release status codes reported by the package manager."""

    UNKNOWN = 0
    DEPLOYED = 1
    DELETED = 2
    SUPERSEDED = 3
    FAILED = 4
    DELETING = 5
    PENDING_INSTALL = 6
    PENDING_UPGRADE = 7
    PENDING_ROLLBACK = 8

    @classmethod
    def decode(cls, code: Any) -> "ReleaseStatus":
        """Maps a raw remote code (int or name) onto the closed set."""
        if isinstance(code, cls):
            return code
        try:
            if isinstance(code, str) and not code.isdigit():
                return cls[code.upper().replace("-", "_")]
            return cls(int(code))
        except (KeyError, ValueError, TypeError):
            raise RemoteError("status", f"unrecognized release status code: {code!r}")


class Action(str, Enum):
    INSTALL = "CREATE"
    UPGRADE = "UPDATE"


@dataclass(frozen=True)
class InstallOptions:
    dry_run: bool = False
    reuse_name: bool = False


@dataclass(frozen=True)
class ValueSecretRef:
    """A secret holding a values document under the well-known data key."""

    name: str


@dataclass(frozen=True)
class ReleaseDescriptor:
    """
    Immutable input to a lifecycle operation.

    Mirrors the fields of a HelmRelease resource: where the release lives,
    what to call it, and the layered configuration sources to merge.
    """

    name: str
    namespace: str = ""
    release_name: str = ""
    value_files: Tuple[str, ...] = ()
    value_secrets: Tuple[ValueSecretRef, ...] = ()
    values: Dict[str, Any] = field(default_factory=dict)
    timeout: Optional[int] = None
    reset_values: bool = False
    force_upgrade: bool = False

    def get_release_name(self) -> str:
        """Explicit override, otherwise '<namespace>-<name>'."""
        if self.release_name:
            return self.release_name
        return f"{self.effective_namespace}-{self.name}"

    @property
    def effective_namespace(self) -> str:
        return self.namespace or DEFAULT_NAMESPACE

    def get_timeout(self, default: int = DEFAULT_TIMEOUT) -> int:
        if self.timeout is None:
            return default
        return self.timeout

    def resource_id(self) -> str:
        """The ownership marker value: '<namespace>/HelmRelease/<name>'."""
        return f"{self.namespace}/{OWNER_KIND}/{self.name}"

    @classmethod
    def from_resource(cls, doc: Any) -> "ReleaseDescriptor":
        """
        Builds a descriptor from a parsed HelmRelease resource document.

        Raises InputError when the document is not a HelmRelease or
        carries fields of the wrong shape.
        """
        if not isinstance(doc, dict):
            raise InputError("descriptor", "HelmRelease document must be a mapping")
        if doc.get("kind") != OWNER_KIND:
            raise InputError("descriptor", f"expected kind {OWNER_KIND}, got {doc.get('kind')!r}")

        metadata = doc.get("metadata") or {}
        spec = doc.get("spec") or {}
        name = metadata.get("name")
        if not name:
            raise InputError("descriptor", "HelmRelease is missing metadata.name")

        values = spec.get("values") or {}
        if not isinstance(values, dict):
            raise InputError("descriptor", f"spec.values of {name} must be a mapping")

        secrets = []
        for entry in spec.get("valueFileSecrets") or []:
            if not isinstance(entry, dict) or not entry.get("name"):
                raise InputError("descriptor", f"valueFileSecrets entry without a name in {name}")
            secrets.append(ValueSecretRef(name=str(entry["name"])))

        timeout = spec.get("timeout")
        if timeout is not None:
            try:
                timeout = int(timeout)
            except (TypeError, ValueError):
                raise InputError("descriptor", f"spec.timeout of {name} is not an integer: {timeout!r}")

        return cls(
            name=str(name),
            namespace=str(metadata.get("namespace") or ""),
            release_name=str(spec.get("releaseName") or ""),
            value_files=tuple(str(f) for f in spec.get("valueFiles") or []),
            value_secrets=tuple(secrets),
            values=values,
            timeout=timeout,
            reset_values=bool(spec.get("resetValues", False)),
            force_upgrade=bool(spec.get("forceUpgrade", False)),
        )


@dataclass
class Release:
    """A release as reported by the package manager. Read-only to the core."""

    name: str
    namespace: str = ""
    revision: int = 0
    status: ReleaseStatus = ReleaseStatus.UNKNOWN
    manifest: str = ""


@dataclass
class ManagedObject:
    """One live object described by a release manifest."""

    kind: str
    name: str
    namespace: str = ""
    api_version: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def resource_id(self) -> str:
        return f"{self.kind}/{self.name}"


@dataclass
class ManagerConfig:
    """Tunables for the lifecycle engine. Defaults match production use."""

    annotation_key: str = "flux.weave.works/antecedent"
    annotation_timeout: float = 10.0
    values_secret_key: str = "values.yaml"
    default_timeout: int = DEFAULT_TIMEOUT
    http_timeout: float = 30.0

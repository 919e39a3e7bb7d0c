#!/usr/bin/env python3
"""
KUBERELEASE MANIFEST PARSER
---------------------------
Decomposes a rendered release manifest (many YAML documents in one blob)
into ManagedObjects.

List kinds (anything carrying an `items` sequence) are unwrapped into their
members. A document that fails to parse is reported and skipped; it never
aborts the rest of the manifest.

Author: KubeRelease Team
Date: 2026-10-18
"""

import re
from typing import Any, Iterator, List

from ruamel.yaml import YAML, YAMLError

from kuberelease.core import events
from kuberelease.core.errors import PartialParseError
from kuberelease.core.events import EventSink, ReleaseEvent, log_event
from kuberelease.core.models import ManagedObject

# Same separator rule as the package manager's own manifest splitter
SEPARATOR = re.compile(r"(?:^|\s*\n)---\s*")


def split_manifests(manifest: str) -> List[str]:
    """Splits on document separators, dropping blank documents."""
    return [doc for doc in SEPARATOR.split(manifest or "") if doc.strip()]


def _to_object(doc: Any) -> ManagedObject:
    if not isinstance(doc, dict):
        raise ValueError(f"document is a {type(doc).__name__}, not a mapping")
    kind = doc.get("kind")
    if not kind:
        raise ValueError("object 'kind' is missing")
    metadata = doc.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise ValueError("metadata is not a mapping")
    return ManagedObject(
        kind=str(kind),
        name=str(metadata.get("name") or ""),
        namespace=str(metadata.get("namespace") or ""),
        api_version=str(doc.get("apiVersion") or ""),
        raw=doc,
    )


def _is_list(doc: Any) -> bool:
    return isinstance(doc, dict) and isinstance(doc.get("items"), list)


def iter_objects(manifest: str, sink: EventSink = log_event,
                 release: str = None) -> Iterator[ManagedObject]:
    """
    Lazily yields every object in `manifest`. Single pass; not restartable.
    """
    yaml = YAML(typ="safe")

    for index, text in enumerate(split_manifests(manifest)):
        try:
            doc = yaml.load(text)
            if doc is None:
                # Comment-only document (e.g. a template that rendered empty)
                continue
            if _is_list(doc):
                members = [_to_object(item) for item in doc["items"]]
            else:
                members = [_to_object(doc)]
        except (YAMLError, ValueError) as e:
            err = PartialParseError(str(e), index=index)
            sink(ReleaseEvent(events.WARNING, f"skipping manifest {err}",
                              release=release, fields={"index": index}))
            continue

        yield from members

#!/usr/bin/env python3
"""
KUBERELEASE VALUE SOURCES
-------------------------
Loads every configuration layer named by a release descriptor and folds
them into one merged tree, in strict precedence order:

    value files (listed order) -> value secrets (listed order) -> inline values

Also owns the YAML wire format handed to the package manager.

Author: KubeRelease Team
Date: 2026-10-18
"""

import io
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import requests
from ruamel.yaml import YAML, YAMLError

from kuberelease.core import events
from kuberelease.core.errors import InputError
from kuberelease.core.events import EventSink, ReleaseEvent, log_event
from kuberelease.core.interfaces import ConfigLoader, SecretAccessor
from kuberelease.core.models import ReleaseDescriptor
from kuberelease.values.merger import merge_layers

REMOTE_SCHEMES = ("http", "https")


class ValueFileLoader:
    """
    Reads a value file from a local path or an http(s) locator.
    Locators with any other scheme (or none) are treated as local paths.
    """

    def __init__(self, timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def load(self, ref: str) -> bytes:
        scheme = urlparse(ref).scheme.lower()
        if scheme in REMOTE_SCHEMES:
            return self._fetch(ref)
        try:
            return Path(ref).read_bytes()
        except OSError as e:
            raise InputError(ref, f"cannot read value file {ref}: {e}") from e

    def _fetch(self, url: str) -> bytes:
        try:
            resp = self.session.get(url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise InputError(url, f"cannot fetch value file {url}: {e}") from e
        return resp.content


def parse_values(raw: bytes, source: str) -> Dict[str, Any]:
    """Parses one YAML values document. Empty input is an empty layer."""
    try:
        data = YAML(typ="safe").load(raw)
    except YAMLError as e:
        raise InputError(source, f"malformed values in {source}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InputError(source, f"values in {source} must be a mapping, got {type(data).__name__}")
    return data


def dump_values(values: Dict[str, Any]) -> str:
    """Serializes a merged tree to the YAML handed to the package manager."""
    if not values:
        return ""
    yaml = YAML(typ="safe")
    yaml.default_flow_style = False
    stream = io.StringIO()
    yaml.dump(values, stream)
    return stream.getvalue()


class ValuesComposer:
    """Assembles the MergedConfiguration for one operation."""

    def __init__(self, loader: Optional[ConfigLoader] = None,
                 secrets: Optional[SecretAccessor] = None,
                 secret_key: str = "values.yaml",
                 sink: EventSink = log_event):
        self.loader = loader or ValueFileLoader()
        self.secrets = secrets
        self.secret_key = secret_key
        self.sink = sink

    def compose(self, descriptor: ReleaseDescriptor) -> Dict[str, Any]:
        release = descriptor.get_release_name()
        layers: List[Dict[str, Any]] = []

        for ref in descriptor.value_files:
            layers.append(self._guard(release, ref, lambda: self._from_file(ref)))

        for secret in descriptor.value_secrets:
            layers.append(self._guard(release, secret.name,
                                      lambda: self._from_secret(descriptor, secret.name)))

        layers.append(descriptor.values or {})
        return merge_layers(layers)

    def _from_file(self, ref: str) -> Dict[str, Any]:
        try:
            raw = self.loader.load(ref)
        except InputError:
            raise
        except Exception as e:
            raise InputError(ref, f"cannot read value file {ref}: {e}") from e
        return parse_values(raw, ref)

    def _from_secret(self, descriptor: ReleaseDescriptor, name: str) -> Dict[str, Any]:
        if self.secrets is None:
            raise InputError(name, f"value secret {name} requested but no secret accessor is configured")
        try:
            data = self.secrets.get_secret_data(descriptor.namespace, name)
        except InputError:
            raise
        except Exception as e:
            raise InputError(name, f"cannot get secret {name}: {e}") from e

        payload = data.get(self.secret_key)
        if payload is None:
            self.sink(ReleaseEvent(events.WARNING, f"secret {name} has no {self.secret_key} key",
                                   release=descriptor.get_release_name()))
            return {}
        return parse_values(payload, f"{name}/{self.secret_key}")

    def _guard(self, release: str, source: str, load) -> Dict[str, Any]:
        try:
            return load()
        except InputError as e:
            self.sink(ReleaseEvent(events.ERROR, f"cannot load values from {source}: {e}",
                                   release=release))
            raise

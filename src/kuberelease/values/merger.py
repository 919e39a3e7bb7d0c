#!/usr/bin/env python3
"""
KUBERELEASE VALUES MERGER
-------------------------
Layered deep merge of chart value trees.

Later layers win at conflicting keys. Mappings present on both sides are
merged recursively; every other value (scalars, lists, mismatched types)
is replaced wholesale. Inputs are never mutated: the result is a fresh
tree, so one base configuration can be reused across many operations.

Example:
    >>> merge_values({"a": 1, "b": {"x": 1}}, {"b": {"y": 2}, "c": 3})
    {'a': 1, 'b': {'x': 1, 'y': 2}, 'c': 3}

Author: KubeRelease Team
Date: 2026-10-18
"""

from collections.abc import Mapping
from copy import deepcopy
from typing import Any, Dict, Iterable


def merge_values(dest: Mapping, src: Mapping) -> Dict[str, Any]:
    """Returns a new tree holding `dest` overlaid with `src`."""
    result = {k: deepcopy(v) for k, v in dest.items()}

    for key, value in src.items():
        if key not in result:
            result[key] = deepcopy(value)
            continue
        if not isinstance(value, Mapping):
            result[key] = deepcopy(value)
            continue
        existing = result[key]
        # Mapping over a non-mapping replaces the whole key
        if not isinstance(existing, Mapping):
            result[key] = deepcopy(value)
            continue
        result[key] = merge_values(existing, value)

    return result


def merge_layers(layers: Iterable[Mapping]) -> Dict[str, Any]:
    """Folds layers left to right; the last layer has the highest priority."""
    merged: Dict[str, Any] = {}
    for layer in layers:
        merged = merge_values(merged, layer)
    return merged

#!/usr/bin/env python3
"""
KUBERELEASE CLUSTER ADAPTERS
----------------------------
Default SecretAccessor and MutationExecutor built on the official
kubernetes client. Connection setup (kubeconfig / in-cluster config) is the
caller's job: construct the ApiClient however the deployment needs and
hand it in.

Author: KubeRelease Team
Date: 2026-10-18
"""

import base64
import logging
from typing import Dict, List, Optional, Sequence

from kubernetes import client
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import ResourceNotUniqueError

from kuberelease.core.errors import RemoteError

logger = logging.getLogger("kuberelease.cluster")

MERGE_PATCH = "application/merge-patch+json"


class KubeSecretAccessor:
    """Reads secrets through CoreV1 and base64-decodes their data."""

    def __init__(self, api_client: Optional[client.ApiClient] = None):
        self.core_v1 = client.CoreV1Api(api_client)

    def get_secret_data(self, namespace: str, name: str) -> Dict[str, bytes]:
        secret = self.core_v1.read_namespaced_secret(name, namespace or "default")
        return {k: base64.b64decode(v) for k, v in (secret.data or {}).items()}


class KubeAnnotationExecutor:
    """
    Applies one annotation to a batch of 'Kind/name' resources in a
    namespace using merge patches. Equivalent of
    `kubectl annotate --overwrite --namespace NS Kind/name... key=value`.
    """

    def __init__(self, api_client: Optional[client.ApiClient] = None):
        self.dynamic = DynamicClient(api_client or client.ApiClient())

    def _resolve(self, kind: str):
        try:
            return self.dynamic.resources.get(kind=kind)
        except ResourceNotUniqueError:
            # Same kind served by several groups; take discovery's first match
            return self.dynamic.resources.search(kind=kind)[0]

    def annotate(self, namespace: str, resources: Sequence[str], key: str,
                 value: str, timeout: float) -> None:
        body = {"metadata": {"annotations": {key: value}}}
        failed: List[str] = []

        for ident in resources:
            kind, _, name = ident.partition("/")
            try:
                api = self._resolve(kind)
                api.patch(
                    name=name,
                    namespace=namespace if api.namespaced else None,
                    body=body,
                    content_type=MERGE_PATCH,
                    _request_timeout=timeout,
                )
            except Exception as e:
                logger.debug(f"annotate {ident} in {namespace} failed: {e}")
                failed.append(f"{ident}: {e}")

        if failed:
            raise RemoteError("annotate", f"{len(failed)} of {len(resources)} resources "
                                          f"not annotated: " + "; ".join(failed))

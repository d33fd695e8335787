#!/usr/bin/env python3
"""
KUBESWARM KUBERNETES BACKEND
----------------------------
Create-or-patch against a live cluster through the dynamic client of the
official Kubernetes Python client. Any kind known to the API server can
be reconciled; the mutation is applied to a copy of the live object and a
merge patch carrying only the differences is sent when the result differs.

Author: KubeSwarm Team
Date: 2026-10-18
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from kubernetes import client, config, dynamic
from kubernetes.client.rest import ApiException
from kubernetes.dynamic.exceptions import DynamicApiError, NotFoundError, ResourceNotFoundError

from kubeswarm.core.errors import ApplyError
from kubeswarm.core.models import OperationResult, TrackedObject

logger = logging.getLogger("kubeswarm.backends.k8s")

MERGE_PATCH = "application/merge-patch+json"
DEFAULT_NAMESPACE = "default"
SERVICE_ACCOUNT_NAMESPACE = Path("/var/run/secrets/kubernetes.io/serviceaccount/namespace")

# Fields owned by the API server; never part of a comparison or a patch.
SERVER_FIELDS = ("status",)
SERVER_METADATA = ("managedFields", "creationTimestamp", "generation", "uid", "selfLink")

# ValueError comes from the dynamic client itself (e.g. a missing namespace).
API_ERRORS = (DynamicApiError, ResourceNotFoundError, ApiException, ValueError)


def merge_patch(current: Dict[str, Any], desired: Dict[str, Any]) -> Dict[str, Any]:
    """JSON merge patch (RFC 7386) turning `current` into `desired`."""
    patch: Dict[str, Any] = {}
    for key, value in desired.items():
        if key not in current:
            patch[key] = value
        elif isinstance(value, dict) and isinstance(current[key], dict):
            nested = merge_patch(current[key], value)
            if nested:
                patch[key] = nested
        elif current[key] != value:
            patch[key] = value
    for key in current:
        if key not in desired:
            patch[key] = None
    return patch


class KubernetesBackend:
    """
    Apply backend talking to a Kubernetes API server.

    Namespaced objects whose ref carries no namespace land in
    `default_namespace`, which from_kubeconfig takes from the active
    context (or the service account) the way kubectl does.
    """

    def __init__(self, api_client: Optional[client.ApiClient] = None, dynamic_client: Any = None,
                 default_namespace: str = DEFAULT_NAMESPACE):
        if dynamic_client is None:
            dynamic_client = dynamic.DynamicClient(api_client or client.ApiClient())
        self.dynamic = dynamic_client
        self.default_namespace = default_namespace or DEFAULT_NAMESPACE

    @classmethod
    def from_kubeconfig(cls, kubeconfig: Optional[str] = None,
                        context: Optional[str] = None) -> "KubernetesBackend":
        """
        Loads credentials from a kubeconfig, falling back to the in-cluster
        service account when no kubeconfig is available.
        """
        try:
            config.load_kube_config(config_file=kubeconfig, context=context)
            namespace = cls._context_namespace(kubeconfig, context)
        except config.ConfigException as e:
            if kubeconfig or context:
                raise ApplyError(f"Cannot load kubeconfig: {e}") from e
            logger.info("No kubeconfig found, using in-cluster configuration")
            try:
                config.load_incluster_config()
            except config.ConfigException as incluster_error:
                raise ApplyError(f"No Kubernetes configuration available: {incluster_error}") from incluster_error
            namespace = cls._service_account_namespace()
        return cls(api_client=client.ApiClient(), default_namespace=namespace)

    @staticmethod
    def _context_namespace(kubeconfig: Optional[str], context: Optional[str]) -> Optional[str]:
        contexts, active = config.list_kube_config_contexts(config_file=kubeconfig)
        if context:
            active = next((c for c in contexts if c.get("name") == context), active)
        return ((active or {}).get("context") or {}).get("namespace")

    @staticmethod
    def _service_account_namespace() -> Optional[str]:
        try:
            return SERVICE_ACCOUNT_NAMESPACE.read_text().strip() or None
        except OSError:
            return None

    def create_or_patch(self, tracked: TrackedObject) -> OperationResult:
        ref = tracked.ref
        # Mutation errors (broken manifests, sizing failures) surface before
        # the API server is asked about the kind.
        body = tracked.base_object()
        tracked.mutate(body)

        api = self._call(ref, self.dynamic.resources.get, api_version=ref.api_version, kind=ref.kind)
        namespace = self._namespace_for(api, ref.namespace)
        if namespace:
            body["metadata"]["namespace"] = namespace

        try:
            live = api.get(name=ref.name, namespace=namespace)
        except NotFoundError:
            live = None
        except API_ERRORS as e:
            raise ApplyError(f"cannot apply {ref}: {e}") from e

        if live is None:
            self._call(ref, api.create, body=body, namespace=namespace)
            logger.debug(f"Created {ref} in namespace {namespace}")
            return OperationResult.CREATED

        current = self._comparable(live.to_dict())
        desired = copy.deepcopy(current)
        tracked.mutate(desired)
        if desired == current:
            return OperationResult.UNCHANGED

        patch = merge_patch(current, desired)
        resource_version = (current.get("metadata") or {}).get("resourceVersion")
        if resource_version:
            # Optimistic concurrency: the patch fails if the object moved on.
            patch.setdefault("metadata", {})["resourceVersion"] = resource_version
        self._call(ref, api.patch, body=patch, name=ref.name, namespace=namespace, content_type=MERGE_PATCH)
        logger.debug(f"Patched {ref} in namespace {namespace}")
        return OperationResult.UPDATED

    def _namespace_for(self, api: Any, namespace: Optional[str]) -> Optional[str]:
        if not getattr(api, "namespaced", False):
            return None
        return namespace or self.default_namespace

    @staticmethod
    def _call(ref, method, **kwargs):
        try:
            return method(**kwargs)
        except API_ERRORS as e:
            raise ApplyError(f"cannot apply {ref}: {e}") from e

    @staticmethod
    def _comparable(obj: Dict[str, Any]) -> Dict[str, Any]:
        """Strips server-populated fields so that idempotent mutations compare equal."""
        for key in SERVER_FIELDS:
            obj.pop(key, None)
        metadata = obj.get("metadata") or {}
        for key in SERVER_METADATA:
            metadata.pop(key, None)
        return obj

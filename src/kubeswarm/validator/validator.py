#!/usr/bin/env python3
"""
KUBESWARM VALIDATOR - The Gatekeeper
------------------------------------
Pre-flight check run on every manifest document before it becomes a
tracked object. A document that fails here is still tracked, but with a
mutation that always fails, so it shows up in the same failure log and
requeue signal as a real apply error.

Author: KubeSwarm Team
Date: 2026-10-18
"""

from typing import Any, Dict, Tuple


class KubeValidator:
    """Checks that a document carries a usable Kubernetes identity."""

    def __init__(self):
        # Core fields that must exist in every single K8s resource
        self.required_fields = ["apiVersion", "kind", "metadata"]

    def validate(self, doc: Any) -> Tuple[bool, str]:
        """Returns (ok, message)."""
        if not isinstance(doc, dict):
            return False, f"Document is a {type(doc).__name__}, not a mapping."

        for field in self.required_fields:
            if field not in doc:
                return False, f"Missing required top-level field '{field}'."

        for field in ("apiVersion", "kind"):
            value = doc[field]
            if not isinstance(value, str) or not value.strip():
                return False, f"Field '{field}' must be a non-empty string."

        metadata = doc["metadata"]
        if not isinstance(metadata, dict):
            return False, "Field 'metadata' must be a mapping."

        name = metadata.get("name")
        if not isinstance(name, str) or not name.strip():
            return False, "Field 'metadata.name' must be a non-empty string."

        namespace = metadata.get("namespace")
        if namespace is not None and (not isinstance(namespace, str) or not namespace.strip()):
            return False, "Field 'metadata.namespace' must be a non-empty string when set."

        return True, "Manifest identity is valid."

    @staticmethod
    def describe(doc: Dict[str, Any]) -> str:
        """Best-effort 'Kind/name' label for documents that failed validation."""
        kind = doc.get("kind") if isinstance(doc, dict) else None
        metadata = doc.get("metadata") if isinstance(doc, dict) else None
        name = metadata.get("name") if isinstance(metadata, dict) else None
        return f"{kind or 'Unknown'}/{name or 'unnamed'}"

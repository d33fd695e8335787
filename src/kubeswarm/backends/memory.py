#!/usr/bin/env python3
"""
KUBESWARM IN-MEMORY BACKEND
---------------------------
A dictionary-backed apply backend with the same create-or-patch
semantics as the cluster backend. Used for dry runs and tests.

Author: KubeSwarm Team
Date: 2026-10-18
"""

import copy
import logging
import threading
from typing import Any, Dict, Iterable, List, Optional

from kubeswarm.core.errors import ApplyError
from kubeswarm.core.models import ObjectRef, OperationResult, TrackedObject

logger = logging.getLogger("kubeswarm.backends.memory")


class InMemoryBackend:
    """
    Stores objects keyed by ObjectRef.

    `fail_on` lists refs whose apply should raise ApplyError, which makes
    partial-failure batches easy to simulate.
    """

    def __init__(self, objects: Optional[Dict[ObjectRef, Dict[str, Any]]] = None,
                 fail_on: Iterable[ObjectRef] = ()):
        self.objects: Dict[ObjectRef, Dict[str, Any]] = copy.deepcopy(objects or {})
        self.fail_on = set(fail_on)
        self.calls: List[ObjectRef] = []
        self._lock = threading.Lock()

    def create_or_patch(self, tracked: TrackedObject) -> OperationResult:
        ref = tracked.ref
        with self._lock:
            self.calls.append(ref)
            if ref in self.fail_on:
                raise ApplyError(f"simulated failure for {ref}")

            existing = self.objects.get(ref)
            if existing is None:
                body = tracked.base_object()
                tracked.mutate(body)
                self.objects[ref] = copy.deepcopy(body)
                logger.debug(f"Created {ref}")
                return OperationResult.CREATED

            body = copy.deepcopy(existing)
            tracked.mutate(body)
            if body == existing:
                return OperationResult.UNCHANGED

            self.objects[ref] = body
            logger.debug(f"Patched {ref}")
            return OperationResult.UPDATED

    def get(self, ref: ObjectRef) -> Optional[Dict[str, Any]]:
        """Returns a copy of the stored object, or None."""
        obj = self.objects.get(ref)
        return copy.deepcopy(obj) if obj is not None else None

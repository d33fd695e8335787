#!/usr/bin/env python3
"""
KUBESWARM CORE MODELS
---------------------
Defines the fundamental data structures shared by the synchronizer,
the backends and the manifest loader. These models describe *which*
object is reconciled and *how* its desired state is produced.

Author: KubeSwarm Team
Date: 2026-10-18
"""

import copy
import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

# A mutation edits the object in place right before it is applied.
# It must be idempotent: running it twice on the same base state
# yields the same result.
Mutation = Callable[[Dict[str, Any]], None]


class OperationResult(str, enum.Enum):
    """What the apply backend did with a single object."""

    NONE = "none"           # Reported alongside a failure: nothing happened
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class ObjectRef:
    """
    The identity of a managed object.

    Two tracked objects with the same ref describe the same object in the
    cluster, so a batch may contain each ref at most once.
    """
    api_version: str
    kind: str
    name: str
    namespace: Optional[str] = None   # None for cluster-scoped kinds
    # Position of the source document, set only for documents the loader
    # rejected so that two broken copies of one object stay distinct.
    document: Optional[int] = None

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"


@dataclass
class TrackedObject:
    """
    A (target object, mutation) pair awaiting reconciliation.

    `desired` is the base body used when the object does not exist yet;
    `mutate` is then applied on top of it (or on top of the live object).
    """
    ref: ObjectRef
    mutate: Mutation
    desired: Dict[str, Any] = field(default_factory=dict)

    def base_object(self) -> Dict[str, Any]:
        """A fresh body carrying at least the identity of the ref."""
        body = copy.deepcopy(self.desired)
        body.setdefault("apiVersion", self.ref.api_version)
        body.setdefault("kind", self.ref.kind)
        metadata = body.setdefault("metadata", {})
        metadata.setdefault("name", self.ref.name)
        if self.ref.namespace:
            metadata.setdefault("namespace", self.ref.namespace)
        return body


@dataclass
class ReconcileOutcome:
    """Per-object result of one synchronize pass. Never persisted."""
    ref: ObjectRef
    result: OperationResult
    error: Optional[BaseException] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class SyncReport:
    """Ordered outcomes of one batch."""
    outcomes: List[ReconcileOutcome] = field(default_factory=list)

    @property
    def requeue(self) -> bool:
        return any(o.failed for o in self.outcomes)

    @property
    def failures(self) -> List[ReconcileOutcome]:
        return [o for o in self.outcomes if o.failed]

    def count(self, result: OperationResult) -> int:
        return sum(1 for o in self.outcomes if not o.failed and o.result is result)

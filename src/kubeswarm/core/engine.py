#!/usr/bin/env python3
"""
KUBESWARM ENGINE - The Synchronizer
-----------------------------------
The SyncEngine walks an ordered batch of tracked objects and asks the
apply backend to create or patch each one. A failing object never aborts
the batch: the failure is logged, remembered, and folded into a single
"requeue" boolean that the caller's control loop acts upon.

Author: KubeSwarm Team
Date: 2026-10-18
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Iterator, List, Optional, Sequence

from kubeswarm.backends.base import ApplyBackend
from kubeswarm.core.models import (
    Mutation,
    OperationResult,
    ReconcileOutcome,
    SyncReport,
    TrackedObject,
)

logger = logging.getLogger("kubeswarm.engine")


def err_func(error: BaseException) -> Mutation:
    """
    Returns a mutation which raises the provided error when called.

    Lets callers push an upstream construction error through the same
    per-object failure and logging path as a real apply failure.
    """
    def mutate(obj):
        raise error
    return mutate


class SyncEngine:
    """
    Applies tracked objects against a backend and aggregates the outcome.

    With max_workers > 1 the apply calls run on a thread pool; outcomes
    are still logged and reported in input order.
    """

    def __init__(self, backend: ApplyBackend, log: Optional[logging.Logger] = None,
                 max_workers: int = 1):
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.backend = backend
        self.log = log or logger
        self.max_workers = max_workers

    def synchronize(self, tracked_objects: Sequence[TrackedObject]) -> bool:
        """Returns True if at least one object failed and a requeue is needed."""
        return self.synchronize_report(tracked_objects).requeue

    def synchronize_report(self, tracked_objects: Sequence[TrackedObject]) -> SyncReport:
        """Same as synchronize() but keeps every per-object outcome."""
        objects = list(tracked_objects)
        self._check_unique(objects)

        report = SyncReport()
        for outcome in self._run(objects):
            self._log_outcome(outcome)
            report.outcomes.append(outcome)
        return report

    def _run(self, objects: List[TrackedObject]) -> Iterator[ReconcileOutcome]:
        if not objects:
            return iter(())
        if self.max_workers == 1 or len(objects) == 1:
            return map(self._apply_one, objects)
        # Executor.map yields results in submission order.
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            return iter(list(pool.map(self._apply_one, objects)))

    def _apply_one(self, tracked: TrackedObject) -> ReconcileOutcome:
        try:
            result = self.backend.create_or_patch(tracked)
        except Exception as e:
            return ReconcileOutcome(ref=tracked.ref, result=OperationResult.NONE, error=e)
        return ReconcileOutcome(ref=tracked.ref, result=result)

    def _log_outcome(self, outcome: ReconcileOutcome):
        ref = outcome.ref
        fields = {"objName": ref.name, "objKind": ref.kind, "result": outcome.result.value}
        if outcome.failed:
            fields["error"] = str(outcome.error)
            self.log.error(
                "error creating object objName=%s objKind=%s result=%s: %s",
                ref.name, ref.kind, outcome.result.value, outcome.error,
                extra=fields,
            )
        else:
            self.log.info(
                "object changed objName=%s objKind=%s result=%s",
                ref.name, ref.kind, outcome.result.value,
                extra=fields,
            )

    @staticmethod
    def _check_unique(objects: Iterable[TrackedObject]):
        seen = set()
        for tracked in objects:
            if tracked.ref in seen:
                raise ValueError(f"Duplicate tracked object in batch: {tracked.ref}")
            seen.add(tracked.ref)


def create_or_patch_tracked_objects(tracked_objects: Sequence[TrackedObject],
                                    backend: ApplyBackend,
                                    log: Optional[logging.Logger] = None) -> bool:
    """
    Goes through the tracked objects in order and create-or-patches each one.
    Returns whether the caller should requeue.
    """
    return SyncEngine(backend, log=log).synchronize(tracked_objects)

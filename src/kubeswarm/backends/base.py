#!/usr/bin/env python3
"""
KUBESWARM APPLY BACKEND CONTRACT
--------------------------------
The only capability the synchronizer needs from the outside world:
create an object if it is absent, otherwise patch it to match the
mutation, and report which of the two (or neither) happened.

Author: KubeSwarm Team
Date: 2026-10-18
"""

from typing import Protocol

from kubeswarm.core.models import OperationResult, TrackedObject


class ApplyBackend(Protocol):
    def create_or_patch(self, tracked: TrackedObject) -> OperationResult:
        """
        Must be idempotent: calling it again with the same mutation on an
        unchanged object returns OperationResult.UNCHANGED.

        Raises ApplyError (or whatever the mutation raised) on failure.
        """
        ...

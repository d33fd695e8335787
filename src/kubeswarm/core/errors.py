#!/usr/bin/env python3
"""
KUBESWARM ERRORS
----------------
Exception taxonomy for the provisioning core.

Apply failures are isolated per object and only surface as a requeue
signal. Everything raised while generating key material propagates to
the caller, chained to the underlying cause.

Author: KubeSwarm Team
Date: 2026-10-18
"""


class KubeSwarmError(Exception):
    """Root of every error raised by kubeswarm."""


class ApplyError(KubeSwarmError):
    """A backend could not create or patch one object."""


class ManifestError(KubeSwarmError):
    """A manifest document cannot be turned into a tracked object."""


class RandomSourceError(KubeSwarmError):
    """The secure random source could not supply the requested entropy."""


class KeyGenerationError(KubeSwarmError):
    """The identity key pair could not be generated."""


class IdentityDerivationError(KubeSwarmError):
    """A peer ID could not be derived from a public key."""


class SerializationError(KubeSwarmError):
    """A key could not be encoded to (or decoded from) its byte form."""


class IdentityError(KubeSwarmError):
    """Wraps a failure of one step of identity generation with context."""

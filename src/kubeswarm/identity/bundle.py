#!/usr/bin/env python3
"""
KUBESWARM SECRET BUNDLE
-----------------------
Assembles the string data of the Secret a cluster is bootstrapped from.
The caller is responsible for persisting it.

Author: KubeSwarm Team
Date: 2026-10-18
"""

from typing import Dict, Optional

from kubeswarm.identity.keys import IdentityProvisioner

KEY_CLUSTER_SECRET = "CLUSTER_SECRET"
KEY_BOOTSTRAP_PEER_ID = "BOOTSTRAP_PEER_ID"
KEY_BOOTSTRAP_PRIV_KEY = "BOOTSTRAP_PEER_PRIV_KEY"
KEY_SWARM_KEY = "SWARM_KEY"


def peer_id_key(index: int) -> str:
    return f"peerID-{index}"


def private_key_key(index: int) -> str:
    return f"privateKey-{index}"


def build_cluster_secret_data(replicas: int, private: bool = False,
                              provisioner: Optional[IdentityProvisioner] = None) -> Dict[str, str]:
    """
    Returns the Secret data for a cluster of `replicas` nodes: a cluster
    secret, a bootstrap identity, one identity per replica and, for
    private networks, the swarm key.
    """
    if replicas < 1:
        raise ValueError(f"replicas must be >= 1, got {replicas}")
    provisioner = provisioner or IdentityProvisioner()

    bootstrap = provisioner.generate_identity()
    data = {
        KEY_CLUSTER_SECRET: provisioner.new_cluster_secret(),
        KEY_BOOTSTRAP_PEER_ID: bootstrap.peer_id,
        KEY_BOOTSTRAP_PRIV_KEY: bootstrap.private_key_string,
    }
    for i in range(replicas):
        identity = provisioner.generate_identity()
        data[peer_id_key(i)] = identity.peer_id
        data[private_key_key(i)] = identity.private_key_string

    if private:
        data[KEY_SWARM_KEY] = provisioner.new_swarm_key()
    return data

#!/usr/bin/env python3
"""
KUBESWARM IDENTITY SUITE
------------------------
Exercises key material generation with both the OS random source and
deterministic fakes:
1. Length and distinctness of random keys
2. Cluster secret and swarm key formats
3. Ed25519 identity round-trip through its serialized form
4. Error wrapping when the random source or serialization fails

Author: KubeSwarm Team
Date: 2026-10-18
"""

import base64
import re
import threading

import base58
import pytest
from nacl.signing import SigningKey

from kubeswarm.core.errors import (
    IdentityError,
    KeyGenerationError,
    RandomSourceError,
    SerializationError,
)
from kubeswarm.identity import keys
from kubeswarm.identity.bundle import (
    KEY_BOOTSTRAP_PEER_ID,
    KEY_BOOTSTRAP_PRIV_KEY,
    KEY_CLUSTER_SECRET,
    KEY_SWARM_KEY,
    build_cluster_secret_data,
)
from kubeswarm.identity.keys import (
    IdentityProvisioner,
    marshal_public_key,
    peer_id_from_public_key,
    unmarshal_private_key,
)

HEX64 = re.compile(r'^[0-9a-f]{64}$')

# RFC 8032, test 1
RFC_SEED = bytes.fromhex("9d61b19deffd5a60ba844af492ec2cc44449c5697b326919703bac031cae7f60")
RFC_PUBLIC = bytes.fromhex("d75a980182b10ab7d54bfed3c964073a0ee172f3daa62325af021a68f707511a")


def fixed_source(byte: int):
    return lambda n: bytes([byte]) * n


def failing_source(n):
    raise OSError("entropy pool unavailable")


# --- random keys -------------------------------------------------------------

@pytest.mark.parametrize("length", [0, 1, 16, 32, 64, 1024])
def test_random_key_length(length):
    assert len(keys.random_key(length)) == length


def test_random_keys_are_distinct():
    """
    Statistical check: 32-byte keys from the OS source never repeat.
    """
    samples = {keys.random_key(32) for _ in range(200)}
    assert len(samples) == 200


def test_random_key_uses_injected_source():
    provisioner = IdentityProvisioner(random_source=fixed_source(0x5A))
    assert provisioner.random_key(4) == b"\x5a\x5a\x5a\x5a"


def test_random_source_failure_is_reported():
    provisioner = IdentityProvisioner(random_source=failing_source)
    with pytest.raises(RandomSourceError) as info:
        provisioner.random_key(32)
    assert isinstance(info.value.__cause__, OSError)


def test_short_read_is_reported():
    provisioner = IdentityProvisioner(random_source=lambda n: b"\x00" * (n - 1))
    with pytest.raises(RandomSourceError):
        provisioner.random_key(32)


def test_negative_length_is_rejected():
    with pytest.raises(ValueError):
        keys.random_key(-1)


# --- secrets -----------------------------------------------------------------

def test_cluster_secret_format():
    secret = keys.new_cluster_secret()
    assert HEX64.match(secret)
    assert IdentityProvisioner(fixed_source(0xAB)).new_cluster_secret() == "ab" * 32


def test_cluster_secret_propagates_random_failure():
    with pytest.raises(RandomSourceError):
        IdentityProvisioner(failing_source).new_cluster_secret()


def test_swarm_key_template():
    lines = keys.new_swarm_key().split("\n")
    assert len(lines) == 3
    assert lines[0] == "/key/swarm/psk/1.0.0"
    assert lines[1] == "/base16/"
    assert HEX64.match(lines[2])


def test_swarm_key_exact_bytes():
    key = IdentityProvisioner(fixed_source(0x01)).new_swarm_key()
    assert key == "/key/swarm/psk/1.0.0\n/base16/\n" + "01" * 32


def test_swarm_keys_are_independent():
    assert keys.new_swarm_key() != keys.new_swarm_key()


# --- identities ----------------------------------------------------------------

def test_public_key_encoding_matches_rfc_vector():
    public = SigningKey(RFC_SEED).verify_key
    assert public.encode() == RFC_PUBLIC
    assert marshal_public_key(public) == b"\x08\x01\x12\x20" + RFC_PUBLIC


def test_peer_id_is_inline_multihash():
    peer_id = peer_id_from_public_key(SigningKey(RFC_SEED).verify_key)
    assert peer_id.startswith("12D3KooW")
    assert base58.b58decode(peer_id) == b"\x00\x24" + b"\x08\x01\x12\x20" + RFC_PUBLIC


def test_new_key_seeds_from_random_source():
    provisioner = IdentityProvisioner(random_source=lambda n: RFC_SEED[:n])
    private_key, peer_id = provisioner.new_key()
    assert private_key.verify_key.encode() == RFC_PUBLIC
    assert peer_id == peer_id_from_public_key(private_key.verify_key)


def test_generate_identity_serialization():
    provisioner = IdentityProvisioner(random_source=lambda n: RFC_SEED[:n])
    identity = provisioner.generate_identity()
    assert identity.private_key_bytes == b"\x08\x01\x12\x40" + RFC_SEED + RFC_PUBLIC
    assert identity.private_key_string == base64.b64encode(identity.private_key_bytes).decode()


def test_generate_identity_round_trip():
    """
    ROUND-TRIP TEST: the base64 string decodes back into the same key,
    and that key derives the same peer ID.
    """
    identity = keys.generate_identity()
    raw = base64.b64decode(identity.private_key_string, validate=True)
    assert raw == identity.private_key_bytes

    restored = unmarshal_private_key(raw)
    assert keys.marshal_private_key(restored) == raw
    assert peer_id_from_public_key(restored.verify_key) == identity.peer_id


def test_identities_are_unique():
    peer_ids = {keys.generate_identity().peer_id for _ in range(50)}
    assert len(peer_ids) == 50


def test_parallel_generation_is_safe():
    results = []
    lock = threading.Lock()

    def worker():
        identity = keys.generate_identity()
        with lock:
            results.append(identity.peer_id)

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(set(results)) == 16


def test_key_generation_failure_is_wrapped():
    provisioner = IdentityProvisioner(random_source=failing_source)
    with pytest.raises(KeyGenerationError) as info:
        provisioner.new_key()
    assert isinstance(info.value.__cause__, RandomSourceError)

    with pytest.raises(IdentityError, match="cannot generate new key") as info:
        provisioner.generate_identity()
    assert isinstance(info.value.__cause__, KeyGenerationError)


def test_serialization_failure_is_wrapped(monkeypatch):
    def broken(private_key):
        raise SerializationError("encoder exploded")

    monkeypatch.setattr(keys, "marshal_private_key", broken)
    with pytest.raises(IdentityError, match="cannot serialize private key") as info:
        IdentityProvisioner().generate_identity()
    assert isinstance(info.value.__cause__, SerializationError)


def test_unmarshal_rejects_bad_input():
    good = IdentityProvisioner(random_source=lambda n: RFC_SEED[:n]).generate_identity().private_key_bytes

    with pytest.raises(SerializationError, match="unsupported key type"):
        unmarshal_private_key(b"\x08\x02" + good[2:])
    with pytest.raises(SerializationError):
        unmarshal_private_key(good[:-5])
    with pytest.raises(SerializationError, match="does not match"):
        unmarshal_private_key(good[:-1] + bytes([good[-1] ^ 0xFF]))
    with pytest.raises(SerializationError):
        unmarshal_private_key(b"")


# --- bundle ----------------------------------------------------------------------

def test_bundle_contains_every_identity():
    data = build_cluster_secret_data(3)
    assert HEX64.match(data[KEY_CLUSTER_SECRET])
    assert data[KEY_BOOTSTRAP_PEER_ID].startswith("12D3KooW")
    assert base64.b64decode(data[KEY_BOOTSTRAP_PRIV_KEY])
    for i in range(3):
        assert data[f"peerID-{i}"].startswith("12D3KooW")
        assert data[f"privateKey-{i}"]
    assert KEY_SWARM_KEY not in data

    peer_ids = {data[KEY_BOOTSTRAP_PEER_ID]} | {data[f"peerID-{i}"] for i in range(3)}
    assert len(peer_ids) == 4


def test_private_bundle_has_swarm_key():
    data = build_cluster_secret_data(1, private=True)
    assert data[KEY_SWARM_KEY].startswith("/key/swarm/psk/1.0.0\n/base16/\n")


def test_bundle_needs_a_replica():
    with pytest.raises(ValueError):
        build_cluster_secret_data(0)

#!/usr/bin/env python3
"""
KUBESWARM IDENTITY - Key Material
---------------------------------
Generates the secrets a storage cluster needs to come up:

  * node identities: an Ed25519 key pair plus the libp2p peer ID derived
    from its public key;
  * the cluster secret shared by every cluster peer;
  * the pre-shared key of a private swarm.

Every secret is a fresh read from the random source. The source is
injectable so tests can run against a deterministic fake; production
uses os.urandom.

Wire formats follow libp2p: keys are serialized as the protobuf message
`{1: KeyType, 2: Data}` and a peer ID is the base58btc encoding of the
identity multihash of the serialized public key.

Author: KubeSwarm Team
Date: 2026-10-18
"""

import base64
import hashlib
import logging
import os
from dataclasses import dataclass
from typing import Callable, Tuple

import base58
from nacl.exceptions import CryptoError
from nacl.signing import SigningKey, VerifyKey

from kubeswarm.core.errors import (
    IdentityDerivationError,
    IdentityError,
    KeyGenerationError,
    RandomSourceError,
    SerializationError,
)

logger = logging.getLogger("kubeswarm.identity")

RandomSource = Callable[[int], bytes]

SWARM_KEY_PREFIX = "/key/swarm/psk/1.0.0"
SWARM_KEY_MULTIBASE = "/base16/"
SECRET_LENGTH = 32

# libp2p KeyType enum value for Ed25519.
KEY_TYPE_ED25519 = 1
# Accepted by libp2p's GenerateKeyPair for compatibility; Ed25519 ignores it.
ED25519_KEY_BITS = 4096
ED25519_SEED_LENGTH = 32
ED25519_PUBLIC_LENGTH = 32

# Public keys whose encoding fits in 42 bytes are inlined in the peer ID.
_MAX_INLINE_KEY_LENGTH = 42
_MULTIHASH_IDENTITY = 0x00
_MULTIHASH_SHA2_256 = 0x12


@dataclass(frozen=True)
class IdentityMaterial:
    """A node identity. The caller owns it; nothing here keeps a copy."""
    peer_id: str
    private_key_bytes: bytes
    private_key_string: str


# --- protobuf helpers -------------------------------------------------------

def _encode_varint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _decode_varint(data: bytes, pos: int) -> Tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(data):
            raise SerializationError("truncated varint")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, pos
        shift += 7
        if shift > 63:
            raise SerializationError("varint too long")


def _encode_key_message(key_type: int, data: bytes) -> bytes:
    return (b"\x08" + _encode_varint(key_type)
            + b"\x12" + _encode_varint(len(data)) + data)


def _decode_key_message(message: bytes) -> Tuple[int, bytes]:
    key_type = None
    data = None
    pos = 0
    while pos < len(message):
        tag, pos = _decode_varint(message, pos)
        field_no, wire_type = tag >> 3, tag & 0x07
        if field_no == 1 and wire_type == 0:
            key_type, pos = _decode_varint(message, pos)
        elif field_no == 2 and wire_type == 2:
            length, pos = _decode_varint(message, pos)
            if pos + length > len(message):
                raise SerializationError("truncated key data")
            data = message[pos:pos + length]
            pos += length
        else:
            raise SerializationError(f"unexpected field {field_no} (wire type {wire_type})")
    if key_type is None or data is None:
        raise SerializationError("key message is missing its type or data")
    return key_type, data


# --- key (de)serialization --------------------------------------------------

def marshal_public_key(public_key: VerifyKey) -> bytes:
    return _encode_key_message(KEY_TYPE_ED25519, public_key.encode())


def marshal_private_key(private_key: SigningKey) -> bytes:
    """libp2p stores Ed25519 private keys as seed || public key."""
    try:
        data = private_key.encode() + private_key.verify_key.encode()
    except (AttributeError, CryptoError) as e:
        raise SerializationError(f"cannot encode private key: {e}") from e
    return _encode_key_message(KEY_TYPE_ED25519, data)


def unmarshal_private_key(message: bytes) -> SigningKey:
    key_type, data = _decode_key_message(message)
    if key_type != KEY_TYPE_ED25519:
        raise SerializationError(f"unsupported key type {key_type}")
    if len(data) != ED25519_SEED_LENGTH + ED25519_PUBLIC_LENGTH:
        raise SerializationError(f"bad Ed25519 private key length {len(data)}")
    seed, public = data[:ED25519_SEED_LENGTH], data[ED25519_SEED_LENGTH:]
    key = SigningKey(seed)
    if key.verify_key.encode() != public:
        raise SerializationError("Ed25519 private key does not match its embedded public key")
    return key


def peer_id_from_public_key(public_key: VerifyKey) -> str:
    """Base58btc multihash of the serialized public key (the '12D3KooW...' form)."""
    try:
        encoded = marshal_public_key(public_key)
    except (AttributeError, CryptoError) as e:
        raise IdentityDerivationError(f"cannot serialize public key: {e}") from e
    if len(encoded) > _MAX_INLINE_KEY_LENGTH:
        # Unreachable for Ed25519, kept so the format matches other key types.
        multihash = bytes([_MULTIHASH_SHA2_256, 32]) + hashlib.sha256(encoded).digest()
    else:
        multihash = bytes([_MULTIHASH_IDENTITY, len(encoded)]) + encoded
    return base58.b58encode(multihash).decode("ascii")


# --- provisioner ------------------------------------------------------------

class IdentityProvisioner:
    """
    Stateless generator of cluster key material.

    Args:
        random_source: callable returning `n` secure random bytes.
            Must be safe for concurrent use if identities are generated
            in parallel. Defaults to os.urandom.
    """

    def __init__(self, random_source: RandomSource = os.urandom):
        self.random_source = random_source

    def random_key(self, length: int) -> bytes:
        """Returns a cryptographically secure random key of exactly `length` bytes."""
        if length < 0:
            raise ValueError(f"length must be non-negative, got {length}")
        try:
            buf = self.random_source(length)
        except Exception as e:
            raise RandomSourceError(f"cannot read {length} random bytes: {e}") from e
        if not isinstance(buf, (bytes, bytearray)) or len(buf) != length:
            got = len(buf) if isinstance(buf, (bytes, bytearray)) else type(buf).__name__
            raise RandomSourceError(f"random source returned {got} instead of {length} bytes")
        return bytes(buf)

    def new_cluster_secret(self) -> str:
        """Returns a new IPFS Cluster secret: 32 random bytes as lowercase hex."""
        return self.random_key(SECRET_LENGTH).hex()

    def new_swarm_key(self) -> str:
        """Generates the pre-shared key used for hosting a private swarm."""
        key = self.random_key(SECRET_LENGTH).hex()
        return f"{SWARM_KEY_PREFIX}\n{SWARM_KEY_MULTIBASE}\n{key}"

    def new_key(self) -> Tuple[SigningKey, str]:
        """Generates a new Ed25519 private key and returns it with its peer ID."""
        try:
            seed = self.random_key(ED25519_SEED_LENGTH)
            private_key = SigningKey(seed)
        except (RandomSourceError, CryptoError, ValueError, TypeError) as e:
            raise KeyGenerationError(f"cannot generate Ed25519 key pair: {e}") from e
        peer_id = peer_id_from_public_key(private_key.verify_key)
        return private_key, peer_id

    def generate_identity(self) -> IdentityMaterial:
        """
        Generates a new key and returns the peer ID along with the private
        key serialized and base64 encoded (standard alphabet, padded).
        """
        try:
            private_key, peer_id = self.new_key()
        except (KeyGenerationError, IdentityDerivationError) as e:
            raise IdentityError(f"cannot generate new key: {e}") from e
        try:
            private_bytes = marshal_private_key(private_key)
        except SerializationError as e:
            raise IdentityError(f"cannot serialize private key: {e}") from e

        logger.debug(f"Generated identity for peer {peer_id}")
        return IdentityMaterial(
            peer_id=peer_id,
            private_key_bytes=private_bytes,
            private_key_string=base64.b64encode(private_bytes).decode("ascii"),
        )


_default = IdentityProvisioner()

random_key = _default.random_key
new_cluster_secret = _default.new_cluster_secret
new_swarm_key = _default.new_swarm_key
new_key = _default.new_key
generate_identity = _default.generate_identity

#!/usr/bin/env python3
"""
KUBESWARM SIZING RULES - Resource Policy
----------------------------------------
Derives the CPU/memory requests and limits of an IPFS container from the
storage it is asked to hold.

Policy:
  * for every binary terabyte of storage, request 1GB of memory and allow
    up to twice that amount;
  * CPU starts at 250m and grows by 500m per terabyte, limited to twice
    the request.

Many block storage providers cap a volume at 16TiB, so the biggest node
requests 16G of RAM and 8250m of CPU.

All arithmetic is on integers; quantities are rendered the way the
Kubernetes API prints them.

Author: KubeSwarm Team
Date: 2026-10-18
"""

import re
from dataclasses import dataclass
from typing import Any, Dict

from kubeswarm.core.models import Mutation

TEBIBYTE = 1 << 40
GIGA = 10 ** 9

BASE_MILLICORES = 250
MILLICORES_PER_TB = 500

# Decimal SI suffixes, largest first.
_DECIMAL_SUFFIXES = [("E", 10 ** 18), ("P", 10 ** 15), ("T", 10 ** 12),
                     ("G", 10 ** 9), ("M", 10 ** 6), ("k", 10 ** 3)]

_STORAGE_UNITS = {
    "": 1,
    "k": 10 ** 3, "M": 10 ** 6, "G": 10 ** 9, "T": 10 ** 12, "P": 10 ** 15, "E": 10 ** 18,
    "Ki": 1 << 10, "Mi": 1 << 20, "Gi": 1 << 30, "Ti": 1 << 40, "Pi": 1 << 50, "Ei": 1 << 60,
}
_STORAGE_PATTERN = re.compile(r'^\s*(\d+)\s*(Ki|Mi|Gi|Ti|Pi|Ei|k|M|G|T|P|E)?\s*$')


@dataclass(frozen=True)
class ResourceProfile:
    """CPU in millicores, memory in bytes."""
    cpu_request_millis: int
    cpu_limit_millis: int
    memory_request_bytes: int
    memory_limit_bytes: int

    def requests(self) -> Dict[str, str]:
        return {"cpu": format_millicores(self.cpu_request_millis),
                "memory": format_decimal_bytes(self.memory_request_bytes)}

    def limits(self) -> Dict[str, str]:
        return {"cpu": format_millicores(self.cpu_limit_millis),
                "memory": format_decimal_bytes(self.memory_limit_bytes)}

    def to_resource_requirements(self) -> Dict[str, Dict[str, str]]:
        """The `resources:` block of a container spec."""
        return {"requests": self.requests(), "limits": self.limits()}


def format_millicores(millis: int) -> str:
    """750 -> '750m', 2000 -> '2'."""
    if millis % 1000 == 0:
        return str(millis // 1000)
    return f"{millis}m"


def format_decimal_bytes(value: int) -> str:
    """Uses the largest decimal SI suffix that represents the value exactly."""
    if value == 0:
        return "0"
    for suffix, scale in _DECIMAL_SUFFIXES:
        if value % scale == 0:
            return f"{value // scale}{suffix}"
    return str(value)


def ipfs_container_resources(storage_bytes: int) -> ResourceProfile:
    """
    Returns the resource requests/limits for a single IPFS container
    depending on the storage requested by the user.
    """
    if isinstance(storage_bytes, bool) or not isinstance(storage_bytes, int):
        raise TypeError(f"storage_bytes must be an int, got {type(storage_bytes).__name__}")
    if storage_bytes < 0:
        raise ValueError(f"storage_bytes must be non-negative, got {storage_bytes}")

    storage_tb = storage_bytes // TEBIBYTE
    milli_cores_min = BASE_MILLICORES + MILLICORES_PER_TB * storage_tb

    # The threshold is 2 but the floor is 1; kept as deployed.
    ram_gb_min = storage_tb
    if ram_gb_min < 2:
        ram_gb_min = 1

    return ResourceProfile(
        cpu_request_millis=milli_cores_min,
        cpu_limit_millis=2 * milli_cores_min,
        memory_request_bytes=ram_gb_min * GIGA,
        memory_limit_bytes=2 * ram_gb_min * GIGA,
    )


size_for = ipfs_container_resources


def parse_storage_size(text: Any) -> int:
    """
    Accepts a byte count or a Kubernetes-style quantity ('16Ti', '500G')
    and returns the number of bytes.
    """
    if isinstance(text, int) and not isinstance(text, bool):
        if text < 0:
            raise ValueError(f"Storage size must be non-negative, got {text}")
        return text
    match = _STORAGE_PATTERN.match(str(text))
    if not match:
        raise ValueError(f"Invalid storage size: {text!r}")
    number, suffix = match.groups()
    return int(number) * _STORAGE_UNITS[suffix or ""]


def resources_mutation(profile: ResourceProfile, container_name: str) -> Mutation:
    """
    Returns a mutation that sets the profile on the named container of a
    workload's pod template (Deployment, StatefulSet, ...).
    """
    def mutate(obj: Dict[str, Any]):
        spec = obj.setdefault("spec", {}).setdefault("template", {}).setdefault("spec", {})
        containers = spec.setdefault("containers", [])
        for container in containers:
            if container.get("name") == container_name:
                break
        else:
            container = {"name": container_name}
            containers.append(container)
        container["resources"] = profile.to_resource_requirements()
    return mutate

"""
Configuration Loader (``stock_config.loader``).

Responsibility
--------------
Loads policy-set YAML files and turns them into ``InventoryPolicy``
objects.  Callers go through ``stock_config.load_policy()``.

Invariants enforced
-------------------
* A policy set is a mapping with ``name``, ``version`` and a ``policy``
  mapping; anything else is rejected with ``ValueError``.
* Unknown policy keys are rejected by ``InventoryPolicy.from_dict``.
* ``compute_checksum`` is deterministic for identical content.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from stock_kernel.domain.policy import InventoryPolicy


@dataclass(frozen=True)
class PolicySet:
    """A named, versioned policy as loaded from one YAML file."""
    name: str
    version: int
    description: str
    policy: InventoryPolicy
    checksum: str
    source: Path


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def parse_policy_set(data: dict[str, Any], source: Path) -> PolicySet:
    missing = {"name", "version", "policy"} - set(data)
    if missing:
        raise ValueError(f"{source}: missing keys {sorted(missing)}")
    policy_data = data["policy"] or {}
    if not isinstance(policy_data, dict):
        raise ValueError(f"{source}: 'policy' must be a mapping")
    return PolicySet(
        name=str(data["name"]),
        version=int(data["version"]),
        description=str(data.get("description", "")),
        policy=InventoryPolicy.from_dict(policy_data),
        checksum=compute_checksum(data),
        source=source,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()

"""
stock_config -- single entrypoint for inventory policy configuration.

Responsibility:
    ``load_policy()`` is the only place policy files are read.  The kernel
    never imports from this package; callers load an ``InventoryPolicy``
    here and hand it to the services.

Failure modes:
    - ``FileNotFoundError`` -- no such policy set.
    - ``ValueError`` -- malformed set or unknown policy keys.
"""

from pathlib import Path

from stock_config.loader import PolicySet, load_yaml_file, parse_policy_set
from stock_kernel.domain.policy import InventoryPolicy
from stock_kernel.logging_config import get_logger

logger = get_logger("config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"

DEFAULT_SET = "default"


def load_policy_set(name_or_path: str | Path | None = None) -> PolicySet:
    """
    Load a policy set by name (a file in ``stock_config/sets/``) or by path.

    ``None`` loads the default set.
    """
    path = _resolve(name_or_path)
    policy_set = parse_policy_set(load_yaml_file(path), path)
    logger.info(
        "inventory_policy_loaded",
        extra={
            "policy_set": policy_set.name,
            "version": policy_set.version,
            "checksum": policy_set.checksum,
            "source": str(path),
        },
    )
    return policy_set


def load_policy(name_or_path: str | Path | None = None) -> InventoryPolicy:
    """The policy of a set; see ``load_policy_set``."""
    return load_policy_set(name_or_path).policy


def available_sets(config_dir: Path | None = None) -> list[str]:
    config_dir = config_dir or _DEFAULT_CONFIG_DIR
    return sorted(p.stem for p in config_dir.glob("*.yaml"))


def _resolve(name_or_path: str | Path | None) -> Path:
    if name_or_path is None:
        return _DEFAULT_CONFIG_DIR / f"{DEFAULT_SET}.yaml"
    path = Path(name_or_path)
    if path.suffix in (".yaml", ".yml") or path.parent != Path("."):
        return path
    return _DEFAULT_CONFIG_DIR / f"{path.name}.yaml"


__all__ = [
    "DEFAULT_SET",
    "PolicySet",
    "available_sets",
    "load_policy",
    "load_policy_set",
]

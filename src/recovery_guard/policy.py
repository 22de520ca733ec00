"""
Recovery Policy

The immutable configuration handed to the checker: which files are
exempt, which modifiers count as recovery guards and which visibility and
mutability values are exempt from needing one.

The compiled-in defaults mirror the production contract tree. A YAML
file can override them:

    source_ext: .sol
    extra_excluded_paths:
      - contracts/testHelpers/NewHelper.sol
    guard_modifiers: [stoppable, recovery, always]
"""
from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional

import yaml

from recovery_guard.errors import PolicyError

logger = logging.getLogger(__name__)

# Environment variable naming a policy file when none is given explicitly
CONFIG_ENV_VAR = "RECOVERY_GUARD_CONFIG"

# Files that take no part in recovery mode: interfaces, storage layouts,
# authority/registry contracts, test helpers and vendored tokens.
DEFAULT_EXCLUDED_PATHS: frozenset[str] = frozenset({
    "contracts/ens/ENS.sol",
    "contracts/ens/ENSRegistry.sol",
    "contracts/extensions/ExtensionFactory.sol",
    "contracts/extensions/OldRoles.sol",
    "contracts/extensions/OldRolesFactory.sol",
    "contracts/extensions/OneTxPayment.sol",
    "contracts/extensions/OneTxPaymentFactory.sol",
    "contracts/gnosis/MultiSigWallet.sol",
    "contracts/PatriciaTree/Bits.sol",
    "contracts/PatriciaTree/Data.sol",
    "contracts/PatriciaTree/IPatriciaTree.sol",
    "contracts/PatriciaTree/IPatriciaTreeNoHash.sol",
    "contracts/PatriciaTree/PatriciaTree.sol",
    "contracts/PatriciaTree/PatriciaTreeNoHash.sol",
    "contracts/PatriciaTree/PatriciaTreeBase.sol",
    "contracts/PatriciaTree/PatriciaTreeProofs.sol",
    "contracts/CommonAuthority.sol",
    "contracts/ColonyAuthority.sol",
    "contracts/ColonyNetworkAuthority.sol",
    "contracts/ColonyNetworkStorage.sol",
    "contracts/ColonyStorage.sol",
    "contracts/DomainRoles.sol",
    "contracts/testHelpers/ContractEditing.sol",
    "contracts/testHelpers/NoLimitSubdomains.sol",
    "contracts/testHelpers/TaskSkillEditing.sol",
    "contracts/testHelpers/FunctionsNotAvailableOnColony.sol",
    "contracts/testHelpers/TransferTest.sol",
    "contracts/ERC20Extended.sol",
    "contracts/EtherRouter.sol",
    "contracts/IRecovery.sol",
    "contracts/IColony.sol",
    "contracts/IMetaColony.sol",
    "contracts/IColonyNetwork.sol",
    "contracts/IReputationMiningCycle.sol",
    "contracts/ITokenLocking.sol",
    "contracts/IEtherRouter.sol",
    "contracts/Migrations.sol",
    "contracts/ReputationMiningCycle.sol",
    "contracts/ReputationMiningCycleRespond.sol",
    "contracts/Resolver.sol",
    "contracts/TokenLocking.sol",
    "contracts/TokenLockingStorage.sol",
    "contracts/Token.sol",  # vendored from the token repo
    "contracts/TokenAuthority.sol",  # vendored from the token repo
})

DEFAULT_GUARD_MODIFIERS: frozenset[str] = frozenset({"stoppable", "recovery", "always"})
DEFAULT_READ_ONLY_MUTABILITY: frozenset[str] = frozenset({"view", "pure"})
DEFAULT_EXEMPT_VISIBILITY: frozenset[str] = frozenset({"private", "internal"})

_SET_KEYS = ("excluded_paths", "guard_modifiers", "read_only_mutability", "exempt_visibility")
_KNOWN_KEYS = frozenset(_SET_KEYS) | {"source_ext", "extra_excluded_paths"}


@dataclass(frozen=True)
class RecoveryPolicy:
    source_ext: str = ".sol"
    excluded_paths: frozenset[str] = DEFAULT_EXCLUDED_PATHS
    guard_modifiers: frozenset[str] = DEFAULT_GUARD_MODIFIERS
    read_only_mutability: frozenset[str] = DEFAULT_READ_ONLY_MUTABILITY
    exempt_visibility: frozenset[str] = DEFAULT_EXEMPT_VISIBILITY

    def is_source(self, relpath: str) -> bool:
        return relpath.endswith(self.source_ext)

    def is_excluded(self, relpath: str) -> bool:
        # Exact membership, never a pattern
        return relpath in self.excluded_paths

    def with_exclusions(self, paths: Iterable[str]) -> "RecoveryPolicy":
        return dataclasses.replace(self, excluded_paths=self.excluded_paths | frozenset(paths))

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_ext": self.source_ext,
            "excluded_paths": sorted(self.excluded_paths),
            "guard_modifiers": sorted(self.guard_modifiers),
            "read_only_mutability": sorted(self.read_only_mutability),
            "exempt_visibility": sorted(self.exempt_visibility),
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, default_flow_style=False)


DEFAULT_POLICY = RecoveryPolicy()


def _string_set(source: str, key: str, value: Any) -> frozenset[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise PolicyError(source, f"'{key}' must be a list of strings")
    return frozenset(value)


def policy_from_dict(data: dict[str, Any], source: str = "<dict>") -> RecoveryPolicy:
    """
    Build a policy from a mapping, starting from the compiled-in defaults.

    Raises:
        PolicyError: Unknown keys or values of the wrong shape.
    """
    unknown = sorted(set(data) - _KNOWN_KEYS)
    if unknown:
        raise PolicyError(source, f"unknown keys: {', '.join(unknown)}")

    overrides: dict[str, Any] = {}
    if "source_ext" in data:
        ext = data["source_ext"]
        if not isinstance(ext, str) or not ext:
            raise PolicyError(source, "'source_ext' must be a non-empty string")
        overrides["source_ext"] = ext
    for key in _SET_KEYS:
        if key in data:
            overrides[key] = _string_set(source, key, data[key])

    policy = dataclasses.replace(DEFAULT_POLICY, **overrides)
    if "extra_excluded_paths" in data:
        policy = policy.with_exclusions(_string_set(source, "extra_excluded_paths", data["extra_excluded_paths"]))
    return policy


def load_policy(policy_path: Path | str | None = None) -> RecoveryPolicy:
    """
    Load the recovery policy.

    Args:
        policy_path: YAML file to load. Falls back to $RECOVERY_GUARD_CONFIG,
            then to the compiled-in defaults.

    Returns:
        The frozen policy.

    Raises:
        PolicyError: If the file is missing, is not valid YAML or is not a
            mapping of known keys.
    """
    if policy_path is None:
        policy_path = os.environ.get(CONFIG_ENV_VAR) or None
    if policy_path is None:
        return DEFAULT_POLICY

    path = Path(policy_path)
    if not path.exists():
        raise PolicyError(str(path), "file not found")

    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise PolicyError(str(path), f"invalid YAML: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise PolicyError(str(path), f"policy must be a YAML mapping, got {type(data).__name__}")

    policy = policy_from_dict(data, source=str(path))
    logger.debug("Loaded policy from %s (%d excluded paths)", path, len(policy.excluded_paths))
    return policy

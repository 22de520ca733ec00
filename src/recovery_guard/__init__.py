"""
recovery_guard - Recovery mode compliance checker

Parses Solidity contracts and verifies that every externally reachable,
state-mutating function carries a recovery-aware modifier.
"""

__version__ = "0.1.0"
__author__ = "recovery-guard contributors"

from recovery_guard.checker import check_tree, evaluate, is_recovery_compliant
from recovery_guard.policy import DEFAULT_POLICY, RecoveryPolicy, load_policy

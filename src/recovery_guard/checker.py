"""
Recovery Mode Compliance Checker

Every externally reachable, state-mutating function of a contract must
carry a recovery-aware modifier, so that nothing bypasses the circuit
breaker while recovery mode is active.

For each source file, in enumeration order:
    1. skip files without the source extension
    2. skip files on the exclusion list (exact path match)
    3. tolerant-parse; structural errors are fatal
    4. take the first contract-kind definition (none -> nothing to check)
    5. take its named functions in declaration order
    6. a function complies if it is private/internal, view/pure, or has a
       guard modifier

Usage:
    from recovery_guard.checker import check_tree
    violations = check_tree("contracts")
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Iterator, Optional

from recovery_guard.errors import SourceParseError
from recovery_guard.parser import (
    ContractDefinition,
    FunctionDefinition,
    NodeType,
    RootNode,
    parse_source_recovering,
)
from recovery_guard.policy import DEFAULT_POLICY, RecoveryPolicy
from recovery_guard.reporting import Violation
from recovery_guard.scanner import SourceUnit, load_source_unit, relative_path, walk_files

logger = logging.getLogger(__name__)


def is_recovery_compliant(fn: FunctionDefinition, policy: RecoveryPolicy = DEFAULT_POLICY) -> bool:
    """True if *fn* may run (or cannot matter) while recovery mode is active."""
    is_exempt = fn.visibility in policy.exempt_visibility
    is_read_only = fn.state_mutability in policy.read_only_mutability
    has_guard = any(m.name in policy.guard_modifiers for m in fn.modifiers)
    return is_exempt or is_read_only or has_guard


def primary_contract(ast: RootNode) -> Optional[ContractDefinition]:
    """The first top-level contract definition; interfaces and libraries are ignored."""
    for child in ast.children:
        if child.node_type == NodeType.CONTRACT_DEFINITION and child.kind == "contract":
            return child
    return None


def named_functions(contract: ContractDefinition) -> list[FunctionDefinition]:
    """Named functions in declaration order (constructors, fallback and receive have no name)."""
    return [
        node for node in contract.sub_nodes
        if node.node_type == NodeType.FUNCTION_DEFINITION and node.name != ""
    ]


def parse_unit(unit: SourceUnit) -> RootNode:
    """
    Tolerant parse of a source unit.

    Warnings (unknown directives and similar quirks) are logged and
    ignored. Any error means the file cannot be analysed reliably.

    Raises:
        SourceParseError: The file has structural parse errors.
    """
    result = parse_source_recovering(unit.text, unit.relpath)
    for warning in result.warnings:
        logger.warning("%s:%s", unit.relpath, warning)
    if not result.success:
        raise SourceParseError(unit.relpath, result.diagnostics)
    return result.ast


def check_source_unit(unit: SourceUnit, policy: RecoveryPolicy = DEFAULT_POLICY) -> Iterator[Violation]:
    """Yield the violations of one unit in declaration order."""
    contract = primary_contract(parse_unit(unit))
    if contract is None:
        logger.debug("%s: no contract definition, nothing to check", unit.relpath)
        return

    for fn in named_functions(contract):
        if is_recovery_compliant(fn, policy):
            continue
        yield Violation(
            path=unit.relpath,
            function=fn.name,
            contract=contract.name,
            line=fn.line,
            column=fn.column,
            visibility=fn.visibility,
            state_mutability=fn.state_mutability,
            modifiers=tuple(fn.modifier_names),
        )


def iter_violations(paths: Iterable[Path | str], policy: RecoveryPolicy = DEFAULT_POLICY) -> Iterator[Violation]:
    """
    Lazily yield violations in enumeration and declaration order.

    Nothing past the last violation consumed is read or parsed, so taking
    only the first one gives fail-fast behaviour.
    """
    for path in paths:
        relpath = relative_path(path)
        if not policy.is_source(relpath):
            continue
        if policy.is_excluded(relpath):
            logger.debug("Skipping excluded %s", relpath)
            continue
        logger.debug("Checking %s", relpath)
        yield from check_source_unit(load_source_unit(path), policy)


def evaluate(paths: Iterable[Path | str], policy: RecoveryPolicy = DEFAULT_POLICY) -> Optional[Violation]:
    """
    The first violation, or None if every eligible function complies.

    Raises:
        SourceReadError: A source file could not be read.
        SourceParseError: A source file could not be parsed.
    """
    return next(iter_violations(paths, policy), None)


def collect_violations(paths: Iterable[Path | str], policy: RecoveryPolicy = DEFAULT_POLICY) -> list[Violation]:
    """Every violation, in the same order evaluate() would meet them."""
    return list(iter_violations(paths, policy))


def check_tree(
    root: Path | str,
    policy: RecoveryPolicy = DEFAULT_POLICY,
    collect_all: bool = False,
) -> list[Violation]:
    """
    Check every file under *root*.

    Returns the first violation only (fail-fast) unless *collect_all* is set.

    Raises:
        SourceRootError: root missing or unreadable.
        SourceReadError, SourceParseError: see evaluate().
    """
    paths = walk_files(root)
    if collect_all:
        return collect_violations(paths, policy)
    first = evaluate(paths, policy)
    return [first] if first else []

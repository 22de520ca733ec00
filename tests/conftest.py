"""
Pytest configuration and shared fixtures.
"""

import sys
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from recovery_guard.parser import parse_source, ContractDefinition, FunctionDefinition
from recovery_guard.policy import CONFIG_ENV_VAR


# =============================================================================
# PATH FIXTURES
# =============================================================================

@pytest.fixture
def fixtures_dir():
    """Path to test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def fixture_tree(fixtures_dir, monkeypatch):
    """Run from the fixtures directory so 'contracts' matches the default exclusion paths."""
    monkeypatch.chdir(fixtures_dir)
    return Path("contracts")


@pytest.fixture(autouse=True)
def no_policy_env(monkeypatch):
    """Keep a developer's $RECOVERY_GUARD_CONFIG out of the tests."""
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)


@pytest.fixture
def write_contracts(tmp_path, monkeypatch):
    """
    Factory writing {relative path: source} under tmp_path/contracts.

    Changes into tmp_path, so the returned root is the relative path
    'contracts' and relpaths look like 'contracts/A.sol'.
    """
    monkeypatch.chdir(tmp_path)

    def _write(files: dict) -> Path:
        root = Path("contracts")
        root.mkdir(exist_ok=True)
        for rel, source in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(source, encoding="utf-8")
        return root

    return _write


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def contract_of(source: str, name: str = None) -> ContractDefinition:
    """Parse source and return the named (or first) contract definition."""
    ast = parse_source(source)
    if name:
        return ast.get_contract(name)
    return ast.get_contracts()[0]


def function_of(source: str, name: str) -> FunctionDefinition:
    """Parse a contract body snippet and return one function."""
    contract = contract_of(f"contract C {{\n{source}\n}}")
    return contract.get_function(name)

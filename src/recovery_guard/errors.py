"""
Fatal error types.

These mean the check could not be completed reliably. They are never
findings: a policy violation is reported as a Violation value instead.
"""

from typing import List, Optional

from recovery_guard.parser import ParseDiagnostic


class RecoveryGuardError(Exception):
    """Base class for errors that abort a run."""
    pass


class SourceRootError(RecoveryGuardError):
    """Raised when the contracts root is missing or cannot be listed."""
    def __init__(self, root: str, reason: str):
        self.root = root
        self.reason = reason
        super().__init__(f"Cannot scan {root}: {reason}")


class SourceReadError(RecoveryGuardError):
    """Raised when a source file cannot be read."""
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read {path}: {reason}")


class SourceParseError(RecoveryGuardError):
    """Raised when a source file has structural parse errors."""
    def __init__(self, path: str, diagnostics: Optional[List[ParseDiagnostic]] = None):
        self.path = path
        self.diagnostics = diagnostics or []
        errors = [d for d in self.diagnostics if d.severity == "error"]
        detail = f": {errors[0]}" if errors else ""
        more = f" (+{len(errors) - 1} more)" if len(errors) > 1 else ""
        super().__init__(f"Failed to parse {path}{detail}{more}")


class PolicyError(RecoveryGuardError):
    """Raised when a policy file is missing or malformed."""
    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid policy {source}: {reason}")

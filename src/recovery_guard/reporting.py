from __future__ import annotations
from dataclasses import dataclass, asdict, field
import json

@dataclass(frozen=True)
class Violation:
    path: str
    function: str
    contract: str
    line: int
    column: int
    visibility: str
    state_mutability: str
    modifiers: tuple[str, ...] = field(default_factory=tuple)

    def describe(self) -> str:
        return (
            f"The contract {self.path} contains a missing stoppable/recovery modifier "
            f"in function {self.function}."
        )

    def to_dict(self) -> dict:
        d = asdict(self)
        d["modifiers"] = list(self.modifiers)
        return d

class Reporter:
    def __init__(self) -> None:
        self.violations: list[Violation] = []
    def add(self, v: Violation) -> None:
        self.violations.append(v)
    def extend(self, violations) -> None:
        for v in violations:
            self.add(v)
    @property
    def ok(self) -> bool:
        return not self.violations
    def to_jsonl(self) -> str:
        return "\n".join(json.dumps(v.to_dict(), ensure_ascii=False) for v in self.violations)
    def render_human(self, verbose: bool = False) -> str:
        out: list[str] = []
        for v in self.violations:
            out.append(v.describe())
            if verbose:
                mods = ", ".join(v.modifiers) if v.modifiers else "none"
                out.append(
                    f"    {v.path}:{v.line}:{v.column} {v.contract}.{v.function} "
                    f"({v.visibility}, {v.state_mutability}; modifiers: {mods})"
                )
        return "\n".join(out)

# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

# Reserved exit code for "your configuration is invalid" (sysexits EX_CONFIG).
EXIT_CONFIG = 78
EXIT_INTERRUPTED = 130


@dataclass(eq=False)
class YakeError(Exception):
    """
    Structured yake error with enough context for:
      - clean CLI output
      - reproducing the failure without re-running

    `path` is the dotted path of the offending target ("" for the root),
    `index` the offending list position (depends entry, exec step) if any.
    """
    path: str
    message: str
    index: Optional[int] = None
    details: Dict[str, str] = field(default_factory=dict)

    kind = "YakeError"

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}", f"target={self.path or '<root>'}"]
        if self.index is not None:
            lines.append(f"index={self.index}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)

    @property
    def exit_code(self) -> int:
        return EXIT_CONFIG


@dataclass(eq=False)
class ConfigError(YakeError):
    kind = "ConfigError"


@dataclass(eq=False)
class ResolutionError(YakeError):
    available: List[str] = field(default_factory=list)

    kind = "ResolutionError"

    def __str__(self) -> str:
        text = super().__str__()
        if self.available:
            text += f"\navailable={', '.join(self.available)}"
        return text


@dataclass(eq=False)
class CycleDetected(YakeError):
    cycle: List[str] = field(default_factory=list)

    kind = "CycleDetected"

    def __str__(self) -> str:
        return super().__str__() + f"\ncycle={' -> '.join(self.cycle)}"


@dataclass(eq=False)
class TemplateError(YakeError):
    placeholder: str = ""

    kind = "TemplateError"

    def __str__(self) -> str:
        return super().__str__() + f"\nplaceholder={self.placeholder}"


@dataclass(eq=False)
class ExecutionError(YakeError):
    """A shell step exited non-zero. Fatal to the run, not to the process."""
    step: str = ""
    returncode: int = 1
    stdout: str = ""
    stderr: str = ""

    kind = "ExecutionError"

    def __str__(self) -> str:
        first = self.step.strip().splitlines()[0] if self.step.strip() else ""
        return (
            f"[{self.path}] step {self.index} failed (exit={self.returncode}): {first}"
        )

    @property
    def exit_code(self) -> int:
        return self.returncode

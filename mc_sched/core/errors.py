from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SchedError(Exception):
    """Base error envelope. Prefer returning/printing these rather than raising raw exceptions."""

    code: str
    message: str
    file: Optional[str] = None
    path: Optional[str] = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.file:
            parts.append(self.file)
        if self.path:
            parts.append(self.path)
        loc = ":".join(parts) if parts else "<project>"
        return f"{loc}: {self.code}: {self.message}"


class ProjectLoadError(SchedError):
    pass


class ProjectValidationError(SchedError):
    pass


class CycleError(ValueError):
    """Raised by the topological sort when the dependency relation is not a DAG."""

    def __init__(self, cycle: list[int]) -> None:
        self.cycle = cycle
        super().__init__("dependency cycle detected: " + " -> ".join(str(t) for t in cycle))

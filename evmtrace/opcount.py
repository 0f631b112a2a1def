"""Inspector that counts executed opcodes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

__all__ = ["OpcodeCountInspector"]


@dataclass
class OpcodeCountInspector:
    """Counts every step the interpreter takes."""

    count: int = 0

    def step(self, interp: Any = None, context: Any = None) -> None:
        self.count += 1
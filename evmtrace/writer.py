"""Render call trace arenas as an indented, optionally coloured tree."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Sequence, TextIO

from Crypto.Hash import keccak

from evmtrace.common import InstructionResult
from evmtrace.steps import CallTraceStep, InternalCallStep, LineStep, StorageChange
from evmtrace.types import (
    CallKind,
    CallLog,
    CallTrace,
    CallTraceNode,
    MemberKind,
)

__all__ = [
    "CHEATCODE_ADDRESS",
    "ColorChoice",
    "TraceWriterConfig",
    "TraceWriter",
    "use_colors",
    "num_or_hex",
]

CHEATCODE_ADDRESS = bytes.fromhex("7109709ECfa91a80626fF3989D68f67F5b1DD12D")
"""Calls to this address may be coloured differently."""

_PIPE = "  │ "
_EDGE = "  └─ "
_BRANCH = "  ├─ "
_CALL = "→ "
_RETURN = "← "


class ColorChoice(Enum):
    """When to emit ANSI colour codes."""

    AUTO = "auto"
    ALWAYS_ANSI = "always-ansi"
    ALWAYS = "always"
    NEVER = "never"


def use_colors(choice: ColorChoice) -> bool:
    """Resolve a colour choice; AUTO means colours only when stdout is a terminal."""
    if choice is ColorChoice.AUTO:
        isatty = getattr(sys.stdout, "isatty", None)
        return bool(isatty()) if callable(isatty) else False
    return choice in (ColorChoice.ALWAYS_ANSI, ColorChoice.ALWAYS)


def num_or_hex(value: int) -> str:
    """Decimal for values below one million, otherwise a 32-byte hex word."""
    if value < 1_000_000:
        return str(value)
    return "0x" + value.to_bytes(32, "big").hex()


def _checksum_address(address: bytes) -> str:
    hex_address = bytes(address).hex()
    digest = keccak.new(digest_bits=256, data=hex_address.encode("ascii")).hexdigest()
    return "0x" + "".join(
        char.upper() if int(nibble, 16) >= 8 else char
        for char, nibble in zip(hex_address, digest)
    )


def _hex0x(data: bytes) -> str:
    return "0x" + bytes(data).hex()


@dataclass(frozen=True)
class _Style:
    prefix: str = ""

    @property
    def reset(self) -> str:
        return "\x1b[0m" if self.prefix else ""


_PLAIN = _Style()
_YELLOW = _Style("\x1b[33m")
_CYAN = _Style("\x1b[36m")
_GREEN = _Style("\x1b[32m")
_RED = _Style("\x1b[31m")
_BLUE = _Style("\x1b[34m")


@dataclass
class TraceWriterConfig:
    """Options for a TraceWriter."""

    use_colors: bool = field(default_factory=lambda: use_colors(ColorChoice.AUTO))
    color_cheatcodes: bool = False
    write_bytecodes: bool = False
    write_storage_changes: bool = False

    def with_color_choice(self, choice: ColorChoice) -> TraceWriterConfig:
        """A copy of this config with colours resolved from `choice`."""
        return replace(self, use_colors=use_colors(choice))


class TraceWriter:
    """Writes call trace arenas to a text stream."""

    def __init__(self, writer: TextIO, config: TraceWriterConfig | None = None) -> None:
        self.writer = writer
        self.config = config if config is not None else TraceWriterConfig()
        self.indentation_level = 0

    def write_arena(self, nodes: Sequence[CallTraceNode]) -> None:
        """Write the whole arena, starting from its root node, then flush."""
        self._write_node(nodes, 0)
        flush = getattr(self.writer, "flush", None)
        if callable(flush):
            flush()

    # -- items ---------------------------------------------------------------

    def _write(self, text: str) -> None:
        self.writer.write(text)

    def _write_item(self, nodes: Sequence[CallTraceNode], node_idx: int, item_idx: int) -> int:
        node = nodes[node_idx]
        member = node.ordering[item_idx]
        if member.kind is MemberKind.LOG:
            self._write_log(node.logs[member.index])
            return item_idx + 1
        if member.kind is MemberKind.CALL:
            self._write_node(nodes, node.children[member.index])
            return item_idx + 1
        return self._write_step(nodes, node_idx, item_idx, member.index)

    def _write_items_until(
        self,
        nodes: Sequence[CallTraceNode],
        node_idx: int,
        first_item_idx: int,
        done: Callable[[int], bool],
    ) -> int:
        item_idx = first_item_idx
        while not done(item_idx):
            item_idx = self._write_item(nodes, node_idx, item_idx)
        return item_idx

    def _write_node(self, nodes: Sequence[CallTraceNode], idx: int) -> None:
        node = nodes[idx]
        self._write_branch()
        self._write_trace_header(node.trace)
        self._write("\n")

        self.indentation_level += 1
        count = len(node.ordering)
        self._write_items_until(nodes, idx, 0, lambda item: item == count)

        if self.config.write_storage_changes:
            self._write_storage_changes(node)

        self._write_edge()
        self._write_trace_footer(node.trace)
        self._write("\n")
        self.indentation_level -= 1

    # -- headers and footers -------------------------------------------------

    def _write_trace_header(self, trace: CallTrace) -> None:
        self._write(f"[{trace.gas_used}] ")
        kind_style = self._trace_kind_style()
        address = _checksum_address(trace.address)
        decoded = trace.decoded

        if trace.kind.is_any_create():
            label = decoded.label if decoded and decoded.label is not None else "<unknown>"
            self._write(f"{kind_style.prefix}{_CALL}new{kind_style.reset} {label}@{address}")
            if self.config.write_bytecodes:
                self._write(f"({_hex0x(trace.data)})")
            return

        call_data = decoded.call_data if decoded else None
        if call_data is not None:
            func_name = call_data.signature.split("(", 1)[0]
            inputs = ", ".join(call_data.args)
        elif len(trace.data) < 4:
            func_name, inputs = "fallback", bytes(trace.data).hex()
        else:
            func_name, inputs = bytes(trace.data[:4]).hex(), bytes(trace.data[4:]).hex()

        style = self._trace_style(trace)
        label = decoded.label if decoded and decoded.label is not None else address
        self._write(
            f"{style.prefix}{label}{style.reset}::{style.prefix}{func_name}{style.reset}"
        )
        if trace.value:
            self._write(f"{{value: {trace.value}}}")
        self._write(f"({inputs})")

        action = {
            CallKind.STATIC_CALL: " [staticcall]",
            CallKind.CALL_CODE: " [callcode]",
            CallKind.DELEGATE_CALL: " [delegatecall]",
            CallKind.AUTH_CALL: " [authcall]",
        }.get(trace.kind)
        if action is not None:
            self._write(f"{kind_style.prefix}{action}{kind_style.reset}")

    def _write_trace_footer(self, trace: CallTrace) -> None:
        style = self._trace_style(trace)
        status = trace.status if trace.status is not None else InstructionResult.STOP
        self._write(f"{style.prefix}{_RETURN}[{status.value}]{style.reset}")

        decoded = trace.decoded
        if decoded is not None and decoded.return_data is not None:
            self._write(" " + decoded.return_data)
            return

        created_ok = trace.kind.is_any_create() and (
            trace.status is None or trace.status.is_ok()
        )
        if not self.config.write_bytecodes and created_ok:
            self._write(f" {len(trace.output)} bytes of code")
        elif trace.output:
            self._write(f" {_hex0x(trace.output)}")

    # -- logs and steps ------------------------------------------------------

    def _write_log(self, log: CallLog) -> None:
        style = self._log_style()
        self._write_branch()

        decoded = log.decoded
        if decoded is not None and decoded.name is not None:
            self._write(f"emit {decoded.name}({style.prefix}")
            if decoded.params:
                self._write(", ".join(f"{name}: {value}" for name, value in decoded.params))
            self._write(f"{style.reset})\n")
            return

        for i, topic in enumerate(log.topics):
            if i == 0:
                self._write(" emit topic 0")
            else:
                self._write_pipes()
                self._write(f"       topic {i}")
            self._write(f": {style.prefix}{_hex0x(topic)}{style.reset}\n")

        if log.topics:
            self._write_pipes()
        self._write(f"          data: {style.prefix}{_hex0x(log.data)}{style.reset}\n")

    def _write_step(
        self, nodes: Sequence[CallTraceNode], node_idx: int, item_idx: int, step_idx: int
    ) -> int:
        node = nodes[node_idx]
        step: CallTraceStep = node.trace.steps[step_idx]
        decoded = step.decoded

        # Only explicitly decoded steps are written.
        if decoded is None:
            return item_idx + 1

        if isinstance(decoded, InternalCallStep):
            end_idx = decoded.end_index
            call = decoded.call
            used = max(0, node.trace.steps[end_idx].gas_used - step.gas_used)

            self._write_branch()
            self.indentation_level += 1
            args = f"({', '.join(call.args)})" if call.args is not None else ""
            self._write(f"[{used}] {call.func_name}{args}\n")

            def reached_end(idx: int) -> bool:
                member = node.ordering[idx]
                return member.kind is MemberKind.STEP and member.index == end_idx

            end_item_idx = self._write_items_until(nodes, node_idx, item_idx + 1, reached_end)

            self._write_edge()
            self._write(_RETURN)
            if call.return_data is not None:
                self._write(", ".join(call.return_data))
            self._write("\n")
            self.indentation_level -= 1
            return end_item_idx + 1

        if isinstance(decoded, LineStep):
            self._write_branch()
            self._write(f"{decoded.line}\n")
        return item_idx + 1

    def _write_storage_changes(self, node: CallTraceNode) -> None:
        compacted: dict[int, list[StorageChange]] = {}
        for step in node.trace.steps:
            change = step.storage_change
            if change is None:
                continue
            entry = compacted.setdefault(change.key, [change, change])
            entry[1] = change

        changes = []
        for key, (first, last) in compacted.items():
            before = first.had_value if first.had_value is not None else 0
            after = last.value
            if before != after:
                changes.append((key, before, after))

        if not changes:
            return
        self._write_branch()
        self._write(" storage changes:\n")
        for key, before, after in changes:
            self._write_pipes()
            self._write(f"  @ {num_or_hex(key)}: {num_or_hex(before)} → {num_or_hex(after)}\n")

    # -- prefixes and styles -------------------------------------------------

    def _write_indentation(self) -> None:
        self._write("  " + _PIPE * max(0, self.indentation_level - 1))

    def _write_branch(self) -> None:
        self._write_indentation()
        if self.indentation_level != 0:
            self._write(_BRANCH)

    def _write_pipes(self) -> None:
        self._write_indentation()
        self._write(_PIPE)

    def _write_edge(self) -> None:
        self._write_indentation()
        self._write(_EDGE)

    def _trace_style(self, trace: CallTrace) -> _Style:
        if not self.config.use_colors:
            return _PLAIN
        if self.config.color_cheatcodes and bytes(trace.address) == CHEATCODE_ADDRESS:
            return _BLUE
        return _GREEN if trace.success else _RED

    def _trace_kind_style(self) -> _Style:
        return _YELLOW if self.config.use_colors else _PLAIN

    def _log_style(self) -> _Style:
        return _CYAN if self.config.use_colors else _PLAIN
"""Opcode-level trace steps and their geth struct-log form."""

from __future__ import annotations

from dataclasses import dataclass, field

from evmtrace.common import InstructionResult, convert_memory

__all__ = [
    "OpCode",
    "StorageChangeReason",
    "StorageChange",
    "RecordedMemory",
    "DecodedInternalCall",
    "InternalCallStep",
    "LineStep",
    "DecodedTraceStep",
    "GethDefaultTracingOptions",
    "StructLog",
    "CallTraceStep",
]


def _build_names() -> dict[int, str]:
    names = {
        0x00: "STOP", 0x01: "ADD", 0x02: "MUL", 0x03: "SUB", 0x04: "DIV", 0x05: "SDIV",
        0x06: "MOD", 0x07: "SMOD", 0x08: "ADDMOD", 0x09: "MULMOD", 0x0A: "EXP",
        0x0B: "SIGNEXTEND",
        0x10: "LT", 0x11: "GT", 0x12: "SLT", 0x13: "SGT", 0x14: "EQ", 0x15: "ISZERO",
        0x16: "AND", 0x17: "OR", 0x18: "XOR", 0x19: "NOT", 0x1A: "BYTE", 0x1B: "SHL",
        0x1C: "SHR", 0x1D: "SAR", 0x1E: "CLZ",
        0x20: "KECCAK256",
        0x30: "ADDRESS", 0x31: "BALANCE", 0x32: "ORIGIN", 0x33: "CALLER",
        0x34: "CALLVALUE", 0x35: "CALLDATALOAD", 0x36: "CALLDATASIZE",
        0x37: "CALLDATACOPY", 0x38: "CODESIZE", 0x39: "CODECOPY", 0x3A: "GASPRICE",
        0x3B: "EXTCODESIZE", 0x3C: "EXTCODECOPY", 0x3D: "RETURNDATASIZE",
        0x3E: "RETURNDATACOPY", 0x3F: "EXTCODEHASH",
        0x40: "BLOCKHASH", 0x41: "COINBASE", 0x42: "TIMESTAMP", 0x43: "NUMBER",
        0x44: "DIFFICULTY", 0x45: "GASLIMIT", 0x46: "CHAINID", 0x47: "SELFBALANCE",
        0x48: "BASEFEE", 0x49: "BLOBHASH", 0x4A: "BLOBBASEFEE",
        0x50: "POP", 0x51: "MLOAD", 0x52: "MSTORE", 0x53: "MSTORE8", 0x54: "SLOAD",
        0x55: "SSTORE", 0x56: "JUMP", 0x57: "JUMPI", 0x58: "PC", 0x59: "MSIZE",
        0x5A: "GAS", 0x5B: "JUMPDEST", 0x5C: "TLOAD", 0x5D: "TSTORE", 0x5E: "MCOPY",
        0x5F: "PUSH0",
        0xF0: "CREATE", 0xF1: "CALL", 0xF2: "CALLCODE", 0xF3: "RETURN",
        0xF4: "DELEGATECALL", 0xF5: "CREATE2", 0xFA: "STATICCALL", 0xFD: "REVERT",
        0xFE: "INVALID", 0xFF: "SELFDESTRUCT",
    }
    names.update({0x60 + n: f"PUSH{n + 1}" for n in range(32)})
    names.update({0x80 + n: f"DUP{n + 1}" for n in range(16)})
    names.update({0x90 + n: f"SWAP{n + 1}" for n in range(16)})
    names.update({0xA0 + n: f"LOG{n}" for n in range(5)})
    return names


_NAMES = _build_names()

_MEMORY_WRITERS = frozenset(
    {0x37, 0x39, 0x3C, 0x3E, 0x51, 0x52, 0x53, 0x5E, 0xF1, 0xF2, 0xF4, 0xFA}
)

_STOP = 0x00
_CALL_LIKE = frozenset({0xF1, 0xF4, 0xFA, 0xF0, 0xF2, 0xF5})


@dataclass(frozen=True)
class OpCode:
    """A single EVM opcode byte, known or not."""

    value: int

    def __post_init__(self) -> None:
        if not 0 <= self.value <= 0xFF:
            raise ValueError(f"opcode out of range: {self.value}")

    @property
    def name(self) -> str:
        return _NAMES.get(self.value, f"opcode {self.value:#04x} not defined")

    @property
    def is_known(self) -> bool:
        return self.value in _NAMES

    @property
    def modifies_memory(self) -> bool:
        return self.value in _MEMORY_WRITERS

    def __str__(self) -> str:
        return self.name


class StorageChangeReason:
    """Which instruction touched a storage slot."""

    SLOAD = "SLOAD"
    SSTORE = "SSTORE"


@dataclass(frozen=True)
class StorageChange:
    """A storage slot read or write observed during a step."""

    key: int
    value: int
    had_value: int | None
    reason: str


@dataclass(frozen=True)
class RecordedMemory:
    """Snapshot of interpreter memory."""

    data: bytes = b""

    def __len__(self) -> int:
        return len(self.data)

    def __bytes__(self) -> bytes:
        return bytes(self.data)

    def memory_chunks(self) -> list[str]:
        """Memory as 32-byte hex chunks, the last one zero-padded."""
        return convert_memory(self.data)


@dataclass
class DecodedInternalCall:
    """A decoded internal function call."""

    func_name: str
    args: list[str] | None = None
    return_data: list[str] | None = None


@dataclass
class InternalCallStep:
    """Decoded internal call, ending at the step with index `end_index`."""

    call: DecodedInternalCall
    end_index: int


@dataclass
class LineStep:
    """An arbitrary line representing a step."""

    line: str = ""


DecodedTraceStep = InternalCallStep | LineStep


@dataclass
class GethDefaultTracingOptions:
    """Capture switches of geth's default struct logger."""

    enable_memory: bool | None = None
    disable_memory: bool | None = None
    disable_stack: bool | None = None
    disable_storage: bool | None = None
    enable_return_data: bool | None = None
    disable_return_data: bool | None = None
    debug: bool | None = None
    limit: int | None = None


def _stack_enabled(opts: GethDefaultTracingOptions) -> bool:
    return not (opts.disable_stack or False)


def _memory_enabled(opts: GethDefaultTracingOptions) -> bool:
    if opts.enable_memory is not None:
        return opts.enable_memory
    if opts.disable_memory is not None:
        return not opts.disable_memory
    return False


@dataclass
class StructLog:
    """A geth struct log entry."""

    pc: int
    op: str
    gas: int
    gas_cost: int
    depth: int
    error: str | None = None
    stack: list[int] | None = None
    return_data: bytes | None = None
    memory: list[str] | None = None
    memory_size: int | None = None
    storage: dict[int, int] | None = None
    refund_counter: int | None = None


@dataclass
class CallTraceStep:
    """A recorded execution step."""

    pc: int
    op: OpCode
    stack: tuple[int, ...] | None = None
    push_stack: tuple[int, ...] | None = None
    memory: RecordedMemory | None = None
    returndata: bytes = b""
    gas_remaining: int = 0
    gas_refund_counter: int = 0
    gas_used: int = 0
    gas_cost: int = 0
    storage_change: StorageChange | None = None
    status: InstructionResult | None = None
    immediate_bytes: bytes | None = None
    decoded: DecodedTraceStep | None = field(default=None)

    def to_struct_log(self, opts: GethDefaultTracingOptions, depth: int) -> StructLog:
        """Convert to a geth struct log, capturing stack and memory as `opts` allow."""
        stack = None
        if _stack_enabled(opts) and self.stack is not None:
            stack = list(self.stack)
        memory = None
        if _memory_enabled(opts) and self.memory is not None:
            memory = self.memory.memory_chunks()
        return StructLog(
            pc=self.pc,
            op=str(self.op),
            gas=self.gas_remaining,
            gas_cost=self.gas_cost,
            depth=depth,
            error=self.error_message(),
            stack=stack,
            memory=memory,
            refund_counter=self.gas_refund_counter if self.gas_refund_counter > 0 else None,
        )

    def is_stop(self) -> bool:
        return self.op.value == _STOP

    def is_call_like_op(self) -> bool:
        """True for CALL, CALLCODE, DELEGATECALL, STATICCALL, CREATE and CREATE2."""
        return self.op.value in _CALL_LIKE

    def is_error(self) -> bool:
        return self.status is not None and self.status.is_error()

    def error_message(self) -> str | None:
        if not self.is_error():
            return None
        return f"Some({self.status.value})"

    def ensure_decoded(self) -> DecodedTraceStep:
        """Return the decoded data, creating an empty line if there is none yet."""
        if self.decoded is None:
            self.decoded = LineStep("")
        return self.decoded
"""Shared EVM primitives and helpers used by the tracers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum

__all__ = [
    "InstructionResult",
    "TraceStyle",
    "SpecId",
    "CallScheme",
    "CreateScheme",
    "Log",
    "fmt_error_msg",
    "convert_memory",
    "gas_used",
    "maybe_revert_reason",
]


class InstructionResult(Enum):
    """Outcome of an executed instruction or call frame."""

    # success
    STOP = "Stop"
    RETURN = "Return"
    SELF_DESTRUCT = "SelfDestruct"
    # revert
    REVERT = "Revert"
    CALL_TOO_DEEP = "CallTooDeep"
    OUT_OF_FUNDS = "OutOfFunds"
    CREATE_INIT_CODE_STARTING_EF00 = "CreateInitCodeStartingEF00"
    INVALID_EOF_INIT_CODE = "InvalidEOFInitCode"
    INVALID_EXT_DELEGATE_CALL_TARGET = "InvalidExtDelegateCallTarget"
    # errors
    OUT_OF_GAS = "OutOfGas"
    MEMORY_OOG = "MemoryOOG"
    MEMORY_LIMIT_OOG = "MemoryLimitOOG"
    PRECOMPILE_OOG = "PrecompileOOG"
    INVALID_OPERAND_OOG = "InvalidOperandOOG"
    REENTRANCY_SENTRY_OOG = "ReentrancySentryOOG"
    OPCODE_NOT_FOUND = "OpcodeNotFound"
    CALL_NOT_ALLOWED_INSIDE_STATIC = "CallNotAllowedInsideStatic"
    STATE_CHANGE_DURING_STATIC_CALL = "StateChangeDuringStaticCall"
    INVALID_FE_OPCODE = "InvalidFEOpcode"
    INVALID_JUMP = "InvalidJump"
    NOT_ACTIVATED = "NotActivated"
    STACK_UNDERFLOW = "StackUnderflow"
    STACK_OVERFLOW = "StackOverflow"
    OUT_OF_OFFSET = "OutOfOffset"
    CREATE_COLLISION = "CreateCollision"
    OVERFLOW_PAYMENT = "OverflowPayment"
    PRECOMPILE_ERROR = "PrecompileError"
    NONCE_OVERFLOW = "NonceOverflow"
    CREATE_CONTRACT_SIZE_LIMIT = "CreateContractSizeLimit"
    CREATE_CONTRACT_STARTING_WITH_EF = "CreateContractStartingWithEF"
    CREATE_INIT_CODE_SIZE_LIMIT = "CreateInitCodeSizeLimit"
    FATAL_EXTERNAL_ERROR = "FatalExternalError"

    def __str__(self) -> str:
        return self.value

    def is_ok(self) -> bool:
        """True for a successful outcome."""
        return self in _OK_RESULTS

    def is_revert(self) -> bool:
        """True for an outcome that reverts state but returns gas."""
        return self in _REVERT_RESULTS

    def is_error(self) -> bool:
        """True for an exceptional halt."""
        return not self.is_ok() and not self.is_revert()


_OK_RESULTS = frozenset(
    {InstructionResult.STOP, InstructionResult.RETURN, InstructionResult.SELF_DESTRUCT}
)
_REVERT_RESULTS = frozenset(
    {
        InstructionResult.REVERT,
        InstructionResult.CALL_TOO_DEEP,
        InstructionResult.OUT_OF_FUNDS,
        InstructionResult.CREATE_INIT_CODE_STARTING_EF00,
        InstructionResult.INVALID_EOF_INIT_CODE,
        InstructionResult.INVALID_EXT_DELEGATE_CALL_TARGET,
    }
)


class TraceStyle(Enum):
    """Flavour of error messages to produce."""

    PARITY = "parity"
    GETH = "geth"

    def is_parity(self) -> bool:
        return self is TraceStyle.PARITY


class SpecId(IntEnum):
    """Ethereum hardforks, in activation order."""

    FRONTIER = 0
    FRONTIER_THAWING = 1
    HOMESTEAD = 2
    DAO_FORK = 3
    TANGERINE = 4
    SPURIOUS_DRAGON = 5
    BYZANTIUM = 6
    CONSTANTINOPLE = 7
    PETERSBURG = 8
    ISTANBUL = 9
    MUIR_GLACIER = 10
    BERLIN = 11
    LONDON = 12
    ARROW_GLACIER = 13
    GRAY_GLACIER = 14
    MERGE = 15
    SHANGHAI = 16
    CANCUN = 17
    PRAGUE = 18
    OSAKA = 19


class CallScheme(Enum):
    """How a message call was made."""

    CALL = "call"
    CALL_CODE = "callcode"
    DELEGATE_CALL = "delegatecall"
    STATIC_CALL = "staticcall"


class CreateScheme(Enum):
    """How a contract creation was made."""

    CREATE = "create"
    CREATE2 = "create2"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Log:
    """An emitted EVM log."""

    address: bytes
    topics: tuple[bytes, ...] = field(default_factory=tuple)
    data: bytes = b""


_PARITY_GETH_MESSAGES: dict[InstructionResult, tuple[str, str]] = {
    InstructionResult.REVERT: ("Reverted", "execution reverted"),
    InstructionResult.OUT_OF_GAS: ("Out of gas", "out of gas"),
    InstructionResult.PRECOMPILE_OOG: ("Out of gas", "out of gas"),
    InstructionResult.OUT_OF_FUNDS: (
        "Insufficient balance for transfer",
        "insufficient balance for transfer",
    ),
    InstructionResult.MEMORY_OOG: ("Out of gas", "out of gas: out of memory"),
    InstructionResult.MEMORY_LIMIT_OOG: ("Out of gas", "out of gas: reach memory limit"),
    InstructionResult.INVALID_OPERAND_OOG: ("Out of gas", "out of gas: invalid operand"),
    InstructionResult.OPCODE_NOT_FOUND: ("Bad instruction", "invalid opcode"),
    InstructionResult.STACK_OVERFLOW: ("Out of stack", "Out of stack"),
    InstructionResult.INVALID_JUMP: ("Bad jump destination", "invalid jump destination"),
    InstructionResult.PRECOMPILE_ERROR: ("Built-in failed", "precompiled failed"),
    InstructionResult.INVALID_FE_OPCODE: ("Bad instruction", "invalid opcode: INVALID"),
    InstructionResult.REENTRANCY_SENTRY_OOG: (
        "Out of gas",
        "out of gas: not enough gas for reentrancy sentry",
    ),
}


def fmt_error_msg(res: InstructionResult, style: TraceStyle) -> str | None:
    """Return the error message for a failed result, or None if it succeeded."""
    if res.is_ok():
        return None
    messages = _PARITY_GETH_MESSAGES.get(res)
    if messages is None:
        return res.value
    parity, geth = messages
    return parity if style.is_parity() else geth


def convert_memory(data: bytes) -> list[str]:
    """Split memory into 32-byte hex chunks, zero-padding the last one."""
    return [data[start:start + 32].ljust(32, b"\0").hex() for start in range(0, len(data), 32)]


def gas_used(spec: SpecId, spent: int, refunded: int) -> int:
    """Gas used after applying the refund cap of the given hardfork."""
    quotient = 5 if spec >= SpecId.LONDON else 2
    return spent - min(refunded, spent // quotient)


_REVERT_SELECTOR = bytes.fromhex("08c379a0")
_PANIC_SELECTOR = bytes.fromhex("4e487b71")

_PANIC_REASONS = {
    0x00: "generic panic",
    0x01: "assert(false)",
    0x11: "arithmetic underflow or overflow",
    0x12: "division or modulo by zero",
    0x21: "enum overflow",
    0x22: "invalid encoded storage byte array accessed",
    0x31: "out-of-bounds array access; popping on an empty array",
    0x32: "out-of-bounds access of an array or bytesN",
    0x41: "out of memory",
    0x51: "uninitialized function",
}


def _decode_abi_string(body: bytes) -> str | None:
    if len(body) < 64:
        return None
    offset = int.from_bytes(body[:32], "big")
    if offset + 32 > len(body):
        return None
    length = int.from_bytes(body[offset:offset + 32], "big")
    start = offset + 32
    if start + length > len(body):
        return None
    return body[start:start + length].decode("utf-8", errors="replace")


def _decode_panic(body: bytes) -> str | None:
    if len(body) < 32:
        return None
    code = int.from_bytes(body[:32], "big")
    return _PANIC_REASONS.get(code, f"unknown panic code: {code:#x}")


def maybe_revert_reason(output: bytes) -> str | None:
    """Decode a non-empty revert reason from `Error(string)` or `Panic(uint256)` output."""
    output = bytes(output)
    if len(output) < 4:
        return None
    selector, body = output[:4], output[4:]
    if selector == _REVERT_SELECTOR:
        reason = _decode_abi_string(body)
    elif selector == _PANIC_SELECTOR:
        reason = _decode_panic(body)
    else:
        return None
    if not reason or not reason.strip("\0"):
        return None
    return reason
"""Call traces, their arena nodes and their parity and geth representations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator

from evmtrace.common import (
    CallScheme,
    CreateScheme,
    InstructionResult,
    Log,
    TraceStyle,
    fmt_error_msg,
    maybe_revert_reason,
)
from evmtrace.steps import CallTraceStep

__all__ = [
    "CreationMethod",
    "ActionType",
    "CallType",
    "CallKind",
    "DecodedCallData",
    "DecodedCallTrace",
    "CallTrace",
    "DecodedCallLog",
    "CallLog",
    "MemberKind",
    "TraceMemberOrder",
    "CallAction",
    "CreateAction",
    "SelfdestructAction",
    "Action",
    "CallOutput",
    "CreateOutput",
    "TraceOutput",
    "TransactionTrace",
    "CallLogFrame",
    "CallFrame",
    "CallTraceNode",
]

_ZERO_ADDRESS = bytes(20)


class CreationMethod(Enum):
    """How a parity create action created its contract."""

    NONE = "none"
    CREATE = "create"
    CREATE2 = "create2"


class ActionType(Enum):
    """Kind of a parity trace action."""

    CALL = "call"
    CREATE = "create"
    SELFDESTRUCT = "selfdestruct"
    REWARD = "reward"


class CallType(Enum):
    """Call type of a parity call action."""

    NONE = "none"
    CALL = "call"
    CALL_CODE = "callcode"
    DELEGATE_CALL = "delegatecall"
    STATIC_CALL = "staticcall"
    AUTH_CALL = "authcall"


class CallKind(Enum):
    """A unified representation of a call or contract creation."""

    CALL = "CALL"
    STATIC_CALL = "STATICCALL"
    CALL_CODE = "CALLCODE"
    DELEGATE_CALL = "DELEGATECALL"
    AUTH_CALL = "AUTHCALL"
    CREATE = "CREATE"
    CREATE2 = "CREATE2"

    def __str__(self) -> str:
        return self.value

    def is_any_create(self) -> bool:
        return self in (CallKind.CREATE, CallKind.CREATE2)

    def is_delegate(self) -> bool:
        """True for DELEGATECALL and CALLCODE."""
        return self in (CallKind.DELEGATE_CALL, CallKind.CALL_CODE)

    def is_static_call(self) -> bool:
        return self is CallKind.STATIC_CALL

    def is_auth_call(self) -> bool:
        return self is CallKind.AUTH_CALL

    @classmethod
    def from_call_scheme(cls, scheme: CallScheme) -> CallKind:
        return {
            CallScheme.CALL: cls.CALL,
            CallScheme.STATIC_CALL: cls.STATIC_CALL,
            CallScheme.DELEGATE_CALL: cls.DELEGATE_CALL,
            CallScheme.CALL_CODE: cls.CALL_CODE,
        }[scheme]

    @classmethod
    def from_create_scheme(cls, scheme: CreateScheme) -> CallKind:
        """CREATE2 maps to CREATE2; CREATE and custom schemes map to CREATE."""
        if scheme is CreateScheme.CREATE2:
            return cls.CREATE2
        return cls.CREATE

    def creation_method(self) -> CreationMethod:
        if self is CallKind.CREATE:
            return CreationMethod.CREATE
        if self is CallKind.CREATE2:
            return CreationMethod.CREATE2
        return CreationMethod.NONE

    def action_type(self) -> ActionType:
        return ActionType.CREATE if self.is_any_create() else ActionType.CALL

    def call_type(self) -> CallType:
        return {
            CallKind.CALL: CallType.CALL,
            CallKind.STATIC_CALL: CallType.STATIC_CALL,
            CallKind.CALL_CODE: CallType.CALL_CODE,
            CallKind.DELEGATE_CALL: CallType.DELEGATE_CALL,
            CallKind.AUTH_CALL: CallType.AUTH_CALL,
            CallKind.CREATE: CallType.NONE,
            CallKind.CREATE2: CallType.NONE,
        }[self]


@dataclass
class DecodedCallData:
    """Decoded function signature and arguments."""

    signature: str = ""
    args: list[str] = field(default_factory=list)


@dataclass
class DecodedCallTrace:
    """Decoded data enhancing a call trace."""

    label: str | None = None
    return_data: str | None = None
    call_data: DecodedCallData | None = None


@dataclass
class CallTrace:
    """A trace of a single call frame."""

    depth: int = 0
    success: bool = False
    caller: bytes = _ZERO_ADDRESS
    address: bytes = _ZERO_ADDRESS
    maybe_precompile: bool | None = None
    selfdestruct_address: bytes | None = None
    selfdestruct_refund_target: bytes | None = None
    selfdestruct_transferred_value: int | None = None
    kind: CallKind = CallKind.CALL
    value: int = 0
    data: bytes = b""
    output: bytes = b""
    gas_used: int = 0
    gas_limit: int = 0
    status: InstructionResult | None = None
    steps: list[CallTraceStep] = field(default_factory=list)
    decoded: DecodedCallTrace | None = None

    def is_error(self) -> bool:
        """True if the status is a revert or an error."""
        return self.status is not None and not self.status.is_ok()

    def is_revert(self) -> bool:
        return self.status is InstructionResult.REVERT

    def is_selfdestruct(self) -> bool:
        """True if the call ended in, or recorded, a selfdestruct."""
        return (
            self.status is InstructionResult.SELF_DESTRUCT
            or self.selfdestruct_refund_target is not None
        )

    def error_message(self, style: TraceStyle) -> str | None:
        if self.status is None:
            return None
        return fmt_error_msg(self.status, style)

    def ensure_decoded(self) -> DecodedCallTrace:
        """Return the decoded data, creating an empty record if there is none yet."""
        if self.decoded is None:
            self.decoded = DecodedCallTrace()
        return self.decoded


@dataclass
class DecodedCallLog:
    """Decoded event name and parameters."""

    name: str | None = None
    params: list[tuple[str, str]] | None = None


@dataclass
class CallLog:
    """A log recorded within a call, with optional decoded data."""

    topics: tuple[bytes, ...] = ()
    data: bytes = b""
    decoded: DecodedCallLog | None = None
    position: int = 0
    index: int = 0

    @classmethod
    def from_log(cls, log: Log) -> CallLog:
        return cls(topics=tuple(log.topics), data=bytes(log.data))

    def ensure_decoded(self) -> DecodedCallLog:
        """Return the decoded data, creating an empty record if there is none yet."""
        if self.decoded is None:
            self.decoded = DecodedCallLog()
        return self.decoded


class MemberKind(Enum):
    """What a trace member ordering entry refers to."""

    LOG = "log"
    CALL = "call"
    STEP = "step"


@dataclass(frozen=True)
class TraceMemberOrder:
    """Position of a log, child call or step within a node."""

    kind: MemberKind
    index: int


@dataclass
class CallAction:
    sender: bytes
    to: bytes
    value: int
    gas: int
    input: bytes
    call_type: CallType


@dataclass
class CreateAction:
    sender: bytes
    value: int
    gas: int
    init: bytes
    creation_method: CreationMethod


@dataclass
class SelfdestructAction:
    address: bytes
    refund_address: bytes
    balance: int


Action = CallAction | CreateAction | SelfdestructAction


@dataclass
class CallOutput:
    gas_used: int
    output: bytes


@dataclass
class CreateOutput:
    gas_used: int
    code: bytes
    address: bytes


TraceOutput = CallOutput | CreateOutput


@dataclass
class TransactionTrace:
    """A parity-style trace entry."""

    action: Action
    error: str | None
    result: TraceOutput | None
    trace_address: list[int]
    subtraces: int


@dataclass
class CallLogFrame:
    """A log within a geth call frame."""

    address: bytes | None = None
    topics: list[bytes] | None = None
    data: bytes | None = None
    position: int | None = None
    index: int | None = None


@dataclass
class CallFrame:
    """A geth call tracer frame."""

    typ: str
    sender: bytes = _ZERO_ADDRESS
    gas: int = 0
    gas_used: int = 0
    to: bytes | None = None
    input: bytes = b""
    output: bytes | None = None
    error: str | None = None
    revert_reason: str | None = None
    calls: list[CallFrame] = field(default_factory=list)
    logs: list[CallLogFrame] = field(default_factory=list)
    value: int | None = None


@dataclass
class CallTraceNode:
    """A node in the call trace arena."""

    parent: int | None = None
    children: list[int] = field(default_factory=list)
    idx: int = 0
    trace: CallTrace = field(default_factory=CallTrace)
    logs: list[CallLog] = field(default_factory=list)
    ordering: list[TraceMemberOrder] = field(default_factory=list)

    def execution_address(self) -> bytes:
        """The address whose context the code runs in."""
        if self.trace.kind.is_delegate():
            return self.trace.caller
        return self.trace.address

    def is_precompile(self) -> bool:
        return bool(self.trace.maybe_precompile)

    def kind(self) -> CallKind:
        return self.trace.kind

    def status(self) -> InstructionResult | None:
        return self.trace.status

    def selector(self) -> bytes | None:
        """The 4-byte function selector, if the input is long enough."""
        data = self.trace.data
        return bytes(data[:4]) if len(data) >= 4 else None

    def is_selfdestruct(self) -> bool:
        return self.trace.is_selfdestruct()

    def steps_with_children(self) -> Iterator[tuple[CallTraceStep, int | None]]:
        """Yield each step with the arena index of the child call it started, if any.

        A call-like step that did not produce a child (e.g. it failed before
        entering) is paired with None once the children run out.
        """
        children = iter(self.children)
        for step in self.trace.steps:
            child = next(children, None) if step.is_call_like_op() else None
            yield step, child

    def parity_transaction_trace(self, trace_address: list[int]) -> TransactionTrace:
        action = self.parity_action()
        if self.trace.is_error() and not self.trace.is_revert():
            result = None
        else:
            result = self.parity_trace_output()
        return TransactionTrace(
            action=action,
            error=self.trace.error_message(TraceStyle.PARITY),
            result=result,
            trace_address=list(trace_address),
            subtraces=len(self.children),
        )

    def parity_trace_output(self) -> TraceOutput:
        if self.kind().is_any_create():
            return CreateOutput(
                gas_used=self.trace.gas_used,
                code=self.trace.output,
                address=self.trace.address,
            )
        return CallOutput(gas_used=self.trace.gas_used, output=self.trace.output)

    def parity_selfdestruct_action(self) -> SelfdestructAction | None:
        if not self.is_selfdestruct():
            return None
        trace = self.trace
        return SelfdestructAction(
            address=trace.selfdestruct_address or _ZERO_ADDRESS,
            refund_address=trace.selfdestruct_refund_target or _ZERO_ADDRESS,
            balance=trace.selfdestruct_transferred_value or 0,
        )

    def geth_selfdestruct_call_trace(self) -> CallFrame | None:
        if not self.is_selfdestruct():
            return None
        return CallFrame(
            typ="SELFDESTRUCT",
            sender=self.trace.selfdestruct_address or _ZERO_ADDRESS,
            to=self.trace.selfdestruct_refund_target,
            value=self.trace.selfdestruct_transferred_value,
        )

    def parity_selfdestruct_trace(self, trace_address: list[int]) -> TransactionTrace | None:
        action = self.parity_selfdestruct_action()
        if action is None:
            return None
        return TransactionTrace(
            action=action,
            error=None,
            result=None,
            trace_address=list(trace_address),
            subtraces=0,
        )

    def parity_action(self) -> CallAction | CreateAction:
        """The call or create action; selfdestructs are reported separately."""
        trace = self.trace
        if self.kind().is_any_create():
            return CreateAction(
                sender=trace.caller,
                value=trace.value,
                gas=trace.gas_limit,
                init=trace.data,
                creation_method=self.kind().creation_method(),
            )
        return CallAction(
            sender=trace.caller,
            to=trace.address,
            value=trace.value,
            gas=trace.gas_limit,
            input=trace.data,
            call_type=self.kind().call_type(),
        )

    def geth_empty_call_frame(self, include_logs: bool) -> CallFrame:
        """A geth call frame for this node, without child calls."""
        trace = self.trace
        frame = CallFrame(
            typ=str(trace.kind),
            sender=trace.caller,
            to=trace.address,
            value=trace.value,
            gas=trace.gas_limit,
            gas_used=trace.gas_used,
            input=trace.data,
            output=trace.output if trace.output else None,
        )

        if trace.kind.is_static_call():
            frame.value = None

        if not trace.success:
            if self.kind().is_any_create():
                frame.to = None
            status = self.status()
            if not (status is not None and status.is_revert()):
                frame.gas_used = trace.gas_limit
                frame.output = None
            frame.revert_reason = maybe_revert_reason(trace.output)
            frame.error = trace.error_message(TraceStyle.GETH)

        if include_logs and self.logs:
            address = self.execution_address()
            frame.logs = [
                CallLogFrame(
                    address=address,
                    topics=list(log.topics),
                    data=log.data,
                    position=log.position,
                    index=log.index,
                )
                for log in self.logs
            ]

        return frame
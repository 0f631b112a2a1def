import pytest

from evmtrace.common import CallScheme, CreateScheme, InstructionResult, Log, TraceStyle
from evmtrace.steps import CallTraceStep, OpCode
from evmtrace.types import (
    ActionType,
    CallAction,
    CallKind,
    CallLog,
    CallOutput,
    CallTrace,
    CallTraceNode,
    CallType,
    CreateAction,
    CreateOutput,
    CreationMethod,
    DecodedCallTrace,
    SelfdestructAction,
)

CALLER = bytes([0x11] * 20)
TARGET = bytes([0x22] * 20)
REFUND = bytes([0x33] * 20)

UNISWAP_REVERT = bytes.fromhex(
    "08c379a000000000000000000000000000000000000000000000000000000000000000200000000000000000000000000000000000000000000000000000000000000024556e697377617056323a20494e53554646494349454e545f494e5055545f414d4f554e5400000000000000000000000000000000000000000000000000000080"
)


def make_node(**trace_fields):
    defaults = dict(caller=CALLER, address=TARGET, gas_limit=100, gas_used=40)
    defaults.update(trace_fields)
    return CallTraceNode(trace=CallTrace(**defaults))


@pytest.mark.parametrize(
    "kind,text",
    [
        (CallKind.CALL, "CALL"),
        (CallKind.STATIC_CALL, "STATICCALL"),
        (CallKind.CALL_CODE, "CALLCODE"),
        (CallKind.DELEGATE_CALL, "DELEGATECALL"),
        (CallKind.AUTH_CALL, "AUTHCALL"),
        (CallKind.CREATE, "CREATE"),
        (CallKind.CREATE2, "CREATE2"),
    ],
)
def test_call_kind_strings(kind, text):
    frame = make_node(kind=kind, success=True).geth_empty_call_frame(False)
    assert frame.typ == text
    assert str(kind) == text


@pytest.mark.parametrize(
    "scheme,kind",
    [
        (CallScheme.CALL, CallKind.CALL),
        (CallScheme.STATIC_CALL, CallKind.STATIC_CALL),
        (CallScheme.DELEGATE_CALL, CallKind.DELEGATE_CALL),
        (CallScheme.CALL_CODE, CallKind.CALL_CODE),
    ],
)
def test_from_call_scheme(scheme, kind):
    assert CallKind.from_call_scheme(scheme) is kind


def test_from_create_scheme_custom_is_create():
    assert CallKind.from_create_scheme(CreateScheme.CREATE) is CallKind.CREATE
    assert CallKind.from_create_scheme(CreateScheme.CREATE2) is CallKind.CREATE2
    assert CallKind.from_create_scheme(CreateScheme.CUSTOM) is CallKind.CREATE


def test_kind_predicates():
    assert [k for k in CallKind if k.is_any_create()] == [CallKind.CREATE, CallKind.CREATE2]
    assert {k for k in CallKind if k.is_delegate()} == {CallKind.DELEGATE_CALL, CallKind.CALL_CODE}
    assert CallKind.STATIC_CALL.is_static_call() and not CallKind.CALL.is_static_call()
    assert CallKind.AUTH_CALL.is_auth_call()


def test_kind_conversions():
    assert CallKind.CREATE2.creation_method() is CreationMethod.CREATE2
    assert CallKind.CALL.creation_method() is CreationMethod.NONE
    assert CallKind.CREATE.action_type() is ActionType.CREATE
    assert CallKind.AUTH_CALL.action_type() is ActionType.CALL
    assert CallKind.CREATE.call_type() is CallType.NONE
    assert CallKind.DELEGATE_CALL.call_type() is CallType.DELEGATE_CALL


def test_call_trace_status_predicates():
    assert not CallTrace().is_error()
    reverted = CallTrace(status=InstructionResult.REVERT)
    assert reverted.is_error() and reverted.is_revert()
    oog = CallTrace(status=InstructionResult.OUT_OF_GAS)
    assert oog.is_error() and not oog.is_revert()
    assert not CallTrace(status=InstructionResult.RETURN).is_error()


def test_is_selfdestruct():
    assert CallTrace(status=InstructionResult.SELF_DESTRUCT).is_selfdestruct()
    assert CallTrace(selfdestruct_refund_target=REFUND).is_selfdestruct()
    assert not CallTrace(status=InstructionResult.STOP).is_selfdestruct()


def test_error_message_styles():
    trace = CallTrace(status=InstructionResult.REVERT)
    assert trace.error_message(TraceStyle.PARITY) == "Reverted"
    assert trace.error_message(TraceStyle.GETH) == "execution reverted"
    assert CallTrace().error_message(TraceStyle.GETH) is None


def test_ensure_decoded_is_stable():
    trace = CallTrace()
    decoded = trace.ensure_decoded()
    decoded.label = "Label"
    assert trace.ensure_decoded() is decoded
    assert trace.decoded == DecodedCallTrace(label="Label")


def test_call_log_from_log():
    log = Log(address=TARGET, topics=(b"\x01" * 32,), data=b"\xaa")
    call_log = CallLog.from_log(log)
    assert call_log.topics == log.topics
    assert call_log.data == log.data
    assert (call_log.position, call_log.index, call_log.decoded) == (0, 0, None)
    assert call_log.ensure_decoded() is call_log.ensure_decoded()


def test_execution_address_for_delegate():
    assert make_node(kind=CallKind.DELEGATE_CALL).execution_address() == CALLER
    assert make_node(kind=CallKind.CALL).execution_address() == TARGET


def test_selector():
    assert make_node(data=b"\x01\x02\x03").selector() is None
    assert make_node(data=b"\xaa\xbb\xcc\xdd\xee").selector() == b"\xaa\xbb\xcc\xdd"


def test_is_precompile_defaults_false():
    assert not make_node().is_precompile()
    assert make_node(maybe_precompile=True).is_precompile()


def test_steps_with_children_assigns_in_order():
    ops = [0xF1, 0x01, 0xF1, 0xF1]
    node = make_node(steps=[CallTraceStep(pc=i, op=OpCode(op)) for i, op in enumerate(ops)])
    node.children = [5, 7]
    pairs = list(node.steps_with_children())
    assert [child for _, child in pairs] == [5, None, 7, None]
    assert [step.pc for step, _ in pairs] == [0, 1, 2, 3]


def test_parity_call_trace_success():
    node = make_node(
        status=InstructionResult.RETURN, success=True, value=9, data=b"\x01", output=b"\x02"
    )
    node.children = [1, 2]
    tx = node.parity_transaction_trace([0])
    assert tx.action == CallAction(CALLER, TARGET, 9, 100, b"\x01", CallType.CALL)
    assert tx.result == CallOutput(gas_used=40, output=b"\x02")
    assert tx.error is None
    assert tx.subtraces == 2
    assert tx.trace_address == [0]


def test_parity_error_has_no_result_but_revert_does():
    oog = make_node(status=InstructionResult.OUT_OF_GAS).parity_transaction_trace([])
    assert oog.result is None
    assert oog.error == "Out of gas"
    reverted = make_node(status=InstructionResult.REVERT).parity_transaction_trace([])
    assert reverted.result == CallOutput(gas_used=40, output=b"")
    assert reverted.error == "Reverted"


def test_parity_create_action_and_output():
    node = make_node(kind=CallKind.CREATE2, data=b"\x60", output=b"\x00")
    assert node.parity_action() == CreateAction(CALLER, 0, 100, b"\x60", CreationMethod.CREATE2)
    assert node.parity_trace_output() == CreateOutput(gas_used=40, code=b"\x00", address=TARGET)


def test_selfdestruct_traces():
    node = make_node(
        selfdestruct_address=TARGET,
        selfdestruct_refund_target=REFUND,
        selfdestruct_transferred_value=5,
    )
    assert node.parity_selfdestruct_action() == SelfdestructAction(TARGET, REFUND, 5)
    trace = node.parity_selfdestruct_trace([1, 0])
    assert trace.subtraces == 0 and trace.result is None and trace.trace_address == [1, 0]
    frame = node.geth_selfdestruct_call_trace()
    assert frame.typ == "SELFDESTRUCT"
    assert (frame.sender, frame.to, frame.value) == (TARGET, REFUND, 5)


def test_no_selfdestruct_returns_none():
    node = make_node(status=InstructionResult.STOP)
    assert node.parity_selfdestruct_action() is None
    assert node.parity_selfdestruct_trace([]) is None
    assert node.geth_selfdestruct_call_trace() is None


def test_geth_frame_success():
    node = make_node(success=True, status=InstructionResult.RETURN, value=3, output=b"\x01")
    frame = node.geth_empty_call_frame(False)
    assert frame.typ == "CALL"
    assert (frame.sender, frame.to, frame.value) == (CALLER, TARGET, 3)
    assert (frame.gas, frame.gas_used, frame.output) == (100, 40, b"\x01")
    assert frame.error is None and frame.calls == []


def test_geth_frame_static_call_has_no_value():
    frame = make_node(kind=CallKind.STATIC_CALL, success=True).geth_empty_call_frame(False)
    assert frame.value is None
    assert frame.output is None


def test_geth_frame_revert_keeps_output_and_reason():
    node = make_node(status=InstructionResult.REVERT, output=UNISWAP_REVERT)
    frame = node.geth_empty_call_frame(False)
    assert frame.revert_reason == "UniswapV2: INSUFFICIENT_INPUT_AMOUNT"
    assert frame.error == "execution reverted"
    assert frame.gas_used == 40
    assert frame.output == UNISWAP_REVERT


def test_geth_frame_halt_uses_gas_limit():
    node = make_node(kind=CallKind.CREATE, status=InstructionResult.OUT_OF_GAS, output=b"\x01")
    frame = node.geth_empty_call_frame(False)
    assert frame.to is None
    assert frame.gas_used == 100
    assert frame.output is None
    assert frame.error == "out of gas"


def test_geth_frame_logs():
    node = make_node(kind=CallKind.DELEGATE_CALL, success=True)
    node.logs = [CallLog(topics=(b"\x01" * 32,), data=b"\x02", position=1, index=4)]
    assert node.geth_empty_call_frame(False).logs == []
    logs = node.geth_empty_call_frame(True).logs
    assert len(logs) == 1
    assert logs[0].address == CALLER
    assert logs[0].topics == [b"\x01" * 32]
    assert (logs[0].data, logs[0].position, logs[0].index) == (b"\x02", 1, 4)
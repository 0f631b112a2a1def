# evmtrace

Building blocks for working with EVM execution traces: call and step record
types with their Parity and Geth representations, two small inspectors, a
tree-style trace printer, and the helper functions that custom tracers use to
handle addresses and byte buffers.

## Installation

```
pip install evmtrace
```

To run the test suite:

```
pip install "evmtrace[test]"
pytest
```

## Modules

- `evmtrace.common`: shared enums and helpers. `InstructionResult` (with
  `is_ok()`, `is_revert()`, `is_error()`), `TraceStyle`, `SpecId`,
  `CallScheme`, `CreateScheme` and the `Log` dataclass.
  `fmt_error_msg(res, style)` returns the error message for a failed result in
  Geth or Parity wording, or `None` on success. `convert_memory(data)` splits
  memory into 32-byte hex words, zero-padding the last one.
  `gas_used(spec, spent, refunded)` applies the refund cap of the hardfork
  (one fifth from London on, one half before). `maybe_revert_reason(output)`
  decodes `Error(string)` and `Panic(uint256)` revert data and returns `None`
  for anything else or for an empty reason.
- `evmtrace.opcount`: `OpcodeCountInspector`, whose `count` goes up by one
  on every `step()` call.
- `evmtrace.transfer`: `TransferInspector` collects non-zero ETH transfers
  reported through `call()` and `create()`, and every `selfdestruct()`.
  `TransferInspector.only_internal()` ignores transfers at depth 0. With
  `with_logs(True)` each collected call or create transfer also appends an
  ERC20-style `Transfer` log, emitted by `TRANSFER_LOG_EMITTER`, to the
  `Journal` passed in.
- `evmtrace.steps`: opcode-level records. `OpCode`, `StorageChange`,
  `RecordedMemory`, `DecodedInternalCall`, `InternalCallStep`, `LineStep` and
  `CallTraceStep`. `CallTraceStep.to_struct_log(opts, depth)` converts a step
  to a Geth `StructLog`, capturing stack and memory as the
  `GethDefaultTracingOptions` allow.
- `evmtrace.types`: call-level records. `CallKind`, `CallTrace`, `CallLog`,
  `TraceMemberOrder` and `CallTraceNode`. A node converts to a Parity
  `TransactionTrace` (`parity_transaction_trace`, `parity_selfdestruct_trace`)
  or to a Geth `CallFrame` (`geth_empty_call_frame`,
  `geth_selfdestruct_call_trace`). `steps_with_children()` pairs each step
  with the index of the child call it started.
- `evmtrace.writer`: `TraceWriter` prints a list of `CallTraceNode` values,
  starting at index 0, as an indented tree with optional ANSI colours.
  `TraceWriterConfig` selects colours, cheatcode colouring, bytecode output
  and a compacted list of storage changes. `num_or_hex(value)` prints values
  below one million in decimal and larger ones as a 32-byte hex word.
- `evmtrace.builtins`: tracer helpers. `hex_decode`, `bytes_from_value`,
  `to_hex`, `to_word`, `to_address`, `to_contract`, `to_contract2`,
  `slice_bytes` and `PrecompileList.is_precompiled`. Bad input raises
  `TracerError`.

## Example: collecting transfers

```python
from evmtrace.transfer import Journal, TransferInspector

journal = Journal(depth=1)
inspector = TransferInspector(internal_only=False).with_logs(True)
inspector.call(journal, b"\x01" * 20, b"\x02" * 20, 1000)

for transfer in inspector:
    print(transfer.kind, transfer.value)
print(len(journal.logs))  # 1
```

## Example: contract addresses

```python
from evmtrace.builtins import to_contract, to_contract2, to_hex

print(to_hex(to_contract("0xdeadbeef", 0)))
# 0xe8279be14e9fe2ad2d8e52e42ca96fb33a813bbe
print(to_hex(to_contract2("0xdeadbeef", "0xdead4a17", "0xdeadbeef")))
# 0x8a0d8a428b30200a296dfbe693310e5d6d2c64c5
```

## Example: printing a trace tree

```python
import io

from evmtrace.common import InstructionResult
from evmtrace.types import CallTrace, CallTraceNode
from evmtrace.writer import ColorChoice, TraceWriter, TraceWriterConfig

root = CallTraceNode(
    trace=CallTrace(
        address=b"\x01" * 20,
        data=bytes.fromhex("a9059cbb"),
        gas_used=21000,
        success=True,
        status=InstructionResult.RETURN,
    )
)

out = io.StringIO()
config = TraceWriterConfig().with_color_choice(ColorChoice.NEVER)
TraceWriter(out, config).write_arena([root])
print(out.getvalue())
```

## What it does not do

The package does not run EVM code. It has no interpreter, no state or
database access and no command-line tool. Nothing in it records call trees
from a live execution: `CallTraceNode` lists are built by the caller, and the
inspectors here only act on the values passed to their methods. The tracer
helpers in `evmtrace.builtins` are plain Python functions; there is no
scripting engine to run tracer code in.
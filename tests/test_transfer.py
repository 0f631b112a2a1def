from evmtrace.common import CreateScheme
from evmtrace.transfer import (
    TRANSFER_EVENT_TOPIC,
    TRANSFER_LOG_EMITTER,
    Journal,
    TransferInspector,
    TransferKind,
    TransferOperation,
)

ALICE = bytes([0x11]) * 20
BOB = bytes([0x22]) * 20


def test_constants():
    assert TRANSFER_LOG_EMITTER.hex() == "ee" * 20
    assert TRANSFER_EVENT_TOPIC.hex() == (
        "ddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
    )


def test_call_records_transfer():
    inspector = TransferInspector()
    inspector.call(Journal(depth=0), ALICE, BOB, 5)
    assert list(inspector) == [TransferOperation(TransferKind.CALL, ALICE, BOB, 5)]


def test_zero_and_missing_values_skipped():
    inspector = TransferInspector()
    journal = Journal(depth=1)
    inspector.call(journal, ALICE, BOB, 0)
    inspector.call(journal, ALICE, BOB, None)
    assert inspector.transfers == []


def test_internal_only_skips_top_level():
    inspector = TransferInspector.only_internal()
    inspector.call(Journal(depth=0), ALICE, BOB, 9)
    inspector.call(Journal(depth=1), BOB, ALICE, 3)
    assert [op.sender for op in inspector] == [BOB]


def test_logs_inserted():
    inspector = TransferInspector().with_logs(True)
    journal = Journal(depth=1)
    inspector.call(journal, ALICE, BOB, 1234)
    assert len(journal.logs) == 1
    log = journal.logs[0]
    assert log.address == TRANSFER_LOG_EMITTER
    assert log.topics[0] == TRANSFER_EVENT_TOPIC
    assert log.topics[1][-20:] == ALICE and log.topics[1][:12] == bytes(12)
    assert log.topics[2][-20:] == BOB
    assert int.from_bytes(log.data, "big") == 1234
    assert len(log.data) == 32


def test_no_logs_by_default():
    journal = Journal(depth=1)
    TransferInspector().call(journal, ALICE, BOB, 1)
    assert journal.logs == []


def test_create_kinds():
    inspector = TransferInspector()
    journal = Journal(depth=1)
    inspector.create(journal, ALICE, BOB, 7, CreateScheme.CREATE)
    inspector.create(journal, ALICE, BOB, 8, CreateScheme.CREATE2)
    inspector.create(journal, ALICE, BOB, 9, CreateScheme.CUSTOM)
    assert [op.kind for op in inspector] == [TransferKind.CREATE, TransferKind.CREATE2]
    assert [op.value for op in inspector] == [7, 8]


def test_selfdestruct_always_recorded():
    inspector = TransferInspector.only_internal()
    inspector.selfdestruct(ALICE, BOB, 0)
    assert inspector.transfers == [TransferOperation(TransferKind.SELFDESTRUCT, ALICE, BOB, 0)]
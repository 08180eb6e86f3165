from __future__ import annotations

import asyncio
import json
from typing import List, Optional

from core.config import LedgerConfig, PollingConfig
from core.dedup import compute_message_id
from core.errors import InboxReadError
from core.ledger import PROCESSED_SMS_STORAGE_KEY
from core.models import IncomingMessage, Payment
from core.processor import SmsOutcome
from core.service import PARSING_ENABLED_KEY, IngestionState, SmsIngestionService
from core.window import MONITORING_WINDOW_STORAGE_KEY

NOW_MS = 1704067200000


class FakeKeyValueStore:
    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.fail_writes = False

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise OSError("disk unavailable")
        self.values[key] = value

    def remove(self, key: str) -> None:
        self.values.pop(key, None)


class FakePaymentStore:
    def __init__(self) -> None:
        self.created: list[Payment] = []
        self.fail = False

    def create(self, payment: Payment) -> Payment:
        if self.fail:
            raise OSError("database is locked")
        self.created.append(payment)
        return payment


class FakeInbox:
    def __init__(self, messages: Optional[List[IncomingMessage]] = None) -> None:
        self.messages = list(messages or [])
        self.fail = False
        self.calls: list[int] = []
        self.called = asyncio.Event()

    async def list_messages(self, max_count: int) -> List[IncomingMessage]:
        self.calls.append(max_count)
        self.called.set()
        # Yield once so concurrent ticks get a chance to interleave.
        await asyncio.sleep(0)
        if self.fail:
            raise InboxReadError("content provider unavailable")
        return self.messages[:max_count]


class FakePermissions:
    def __init__(self, granted: bool = True) -> None:
        self.granted = granted
        self.requests = 0

    async def request_read_access(self) -> bool:
        self.requests += 1
        return self.granted


class Clock:
    def __init__(self, now: int) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


def _netflix(date: int = NOW_MS + 1000) -> IncomingMessage:
    return IncomingMessage(address="AX-PAYTM", body="INR 99.00 is paid to Netflix", date=date)


def _make_service(
    inbox: Optional[FakeInbox] = None,
    granted: bool = True,
    poll_in_background: bool = False,
    interval_seconds: float = 30.0,
):
    inbox = inbox or FakeInbox()
    permissions = FakePermissions(granted)
    payments = FakePaymentStore()
    kv = FakeKeyValueStore()
    clock = Clock(NOW_MS)
    service = SmsIngestionService(
        inbox=inbox,
        permissions=permissions,
        payments=payments,
        settings_store=kv,
        polling=PollingConfig(interval_seconds=interval_seconds, max_count=20, force_check_count=10),
        ledger_config=LedgerConfig(max_entries=1000),
        clock=clock,
        poll_in_background=poll_in_background,
    )
    return service, inbox, permissions, payments, kv, clock


def test_enable_denied_permission_stays_stopped() -> None:
    service, _, _, _, kv, _ = _make_service(granted=False)

    result = asyncio.run(service.set_parsing_enabled(True))

    assert result is False
    assert service.state is IngestionState.STOPPED
    assert not service.is_parsing_enabled()
    assert service.window.cutoff() is None
    assert PARSING_ENABLED_KEY not in kv.values


def test_enable_opens_window_and_starts_polling() -> None:
    service, _, _, _, kv, _ = _make_service()

    assert asyncio.run(service.set_parsing_enabled(True)) is True

    assert service.state is IngestionState.POLLING
    assert service.is_parsing_enabled()
    assert service.window.cutoff() == NOW_MS
    assert kv.values[MONITORING_WINDOW_STORAGE_KEY] == str(NOW_MS)


def test_disable_clears_window() -> None:
    service, _, _, _, kv, _ = _make_service()

    async def scenario() -> None:
        await service.set_parsing_enabled(True)
        assert await service.set_parsing_enabled(False) is True

    asyncio.run(scenario())

    assert service.state is IngestionState.STOPPED
    assert not service.is_parsing_enabled()
    assert service.window.cutoff() is None
    assert MONITORING_WINDOW_STORAGE_KEY not in kv.values


def test_reenable_starts_a_new_window() -> None:
    service, _, _, _, _, clock = _make_service()

    async def scenario() -> None:
        await service.set_parsing_enabled(True)
        await service.set_parsing_enabled(False)
        clock.now = NOW_MS + 60_000
        await service.set_parsing_enabled(True)

    asyncio.run(scenario())

    assert service.window.cutoff() == NOW_MS + 60_000


def test_same_message_across_ticks_creates_one_payment() -> None:
    inbox = FakeInbox([_netflix()])
    service, _, _, payments, _, _ = _make_service(inbox)

    async def scenario():
        await service.set_parsing_enabled(True)
        first = await service.tick()
        second = await service.tick()
        return first, second

    first, second = asyncio.run(scenario())

    assert len(payments.created) == 1
    assert first.created == 1
    assert second.counts[SmsOutcome.ALREADY_PROCESSED] == 1
    assert inbox.calls == [20, 20]


def test_backlog_before_window_is_never_imported() -> None:
    old = _netflix(date=NOW_MS - 1)
    inbox = FakeInbox([old])
    service, _, _, payments, _, _ = _make_service(inbox)

    async def scenario():
        await service.set_parsing_enabled(True)
        await service.tick()
        service.clear_ledger()
        return await service.tick()

    summary = asyncio.run(scenario())

    assert payments.created == []
    assert summary.counts[SmsOutcome.BEFORE_WINDOW] == 1


def test_rejected_messages_are_reevaluated_each_tick() -> None:
    inbox = FakeInbox(
        [
            IncomingMessage(address="VM-HDFCBK", body="Your OTP is 482913", date=NOW_MS + 5),
            IncomingMessage(address="+919876543210", body="Rs 500 paid to Ravi", date=NOW_MS + 6),
        ]
    )
    service, _, _, payments, _, _ = _make_service(inbox)

    async def scenario():
        await service.set_parsing_enabled(True)
        await service.tick()
        return await service.tick()

    summary = asyncio.run(scenario())

    assert payments.created == []
    assert len(service.ledger) == 0
    assert summary.counts[SmsOutcome.NO_AMOUNT] == 1
    assert summary.counts[SmsOutcome.UNTRUSTED_SENDER] == 1


def test_inbox_failure_skips_the_tick() -> None:
    inbox = FakeInbox([_netflix()])
    service, _, _, payments, _, _ = _make_service(inbox)

    async def scenario():
        await service.set_parsing_enabled(True)
        inbox.fail = True
        failed = await service.tick()
        inbox.fail = False
        recovered = await service.tick()
        return failed, recovered

    failed, recovered = asyncio.run(scenario())

    assert failed is None
    assert recovered.created == 1
    assert len(payments.created) == 1


def test_payment_write_failure_is_retried_next_tick() -> None:
    inbox = FakeInbox([_netflix()])
    service, _, _, payments, _, _ = _make_service(inbox)

    async def scenario():
        await service.set_parsing_enabled(True)
        payments.fail = True
        failed = await service.tick()
        payments.fail = False
        retried = await service.tick()
        return failed, retried

    failed, retried = asyncio.run(scenario())

    assert failed.counts[SmsOutcome.WRITE_FAILED] == 1
    assert retried.created == 1
    assert len(payments.created) == 1


def test_concurrent_ticks_do_not_double_import() -> None:
    inbox = FakeInbox([_netflix()])
    service, _, _, payments, _, _ = _make_service(inbox)

    async def scenario() -> None:
        await service.set_parsing_enabled(True)
        await asyncio.gather(service.tick(), service.tick(), service.force_check_recent())

    asyncio.run(scenario())

    assert len(payments.created) == 1


def test_initialize_resumes_when_previously_enabled() -> None:
    message = _netflix()
    inbox = FakeInbox([message])
    service, _, _, payments, kv, _ = _make_service(inbox)
    kv.values[PARSING_ENABLED_KEY] = json.dumps(True)
    kv.values[MONITORING_WINDOW_STORAGE_KEY] = str(NOW_MS - 10_000)
    kv.values[PROCESSED_SMS_STORAGE_KEY] = json.dumps(
        [compute_message_id(message.address, message.date, message.body)]
    )

    async def scenario():
        await service.initialize()
        return await service.tick()

    summary = asyncio.run(scenario())

    assert service.state is IngestionState.POLLING
    # The persisted window is kept rather than moved to "now".
    assert service.window.cutoff() == NOW_MS - 10_000
    assert summary.counts[SmsOutcome.ALREADY_PROCESSED] == 1
    assert payments.created == []


def test_initialize_stays_stopped_when_disabled() -> None:
    service, _, permissions, _, _, _ = _make_service()

    asyncio.run(service.initialize())

    assert service.state is IngestionState.STOPPED
    assert permissions.requests == 0


def test_force_check_uses_smaller_batch() -> None:
    inbox = FakeInbox([_netflix()])
    service, _, _, payments, _, _ = _make_service(inbox)

    summary = asyncio.run(service.force_check_recent())

    assert inbox.calls == [10]
    assert summary.created == 1
    assert len(payments.created) == 1


def test_force_check_requires_permission() -> None:
    inbox = FakeInbox([_netflix()])
    service, _, _, payments, _, _ = _make_service(inbox, granted=False)

    assert asyncio.run(service.force_check_recent()) is None
    assert inbox.calls == []
    assert payments.created == []


def test_clear_window_while_polling_reopens_at_now() -> None:
    service, _, _, _, _, clock = _make_service()

    async def scenario() -> None:
        await service.set_parsing_enabled(True)
        clock.now = NOW_MS + 5000
        service.clear_window()

    asyncio.run(scenario())

    assert service.window.cutoff() == NOW_MS + 5000


def test_clear_window_while_stopped_leaves_it_unset() -> None:
    service, _, _, _, _, _ = _make_service()
    service.window.start(NOW_MS)

    service.clear_window()

    assert service.window.cutoff() is None


def test_set_parsing_enabled_reports_storage_failure() -> None:
    service, _, _, _, kv, _ = _make_service()
    kv.fail_writes = True

    assert asyncio.run(service.set_parsing_enabled(True)) is False
    assert service.state is IngestionState.STOPPED


def test_debug_dump_reports_state() -> None:
    inbox = FakeInbox([_netflix()])
    service, _, _, _, _, _ = _make_service(inbox)

    async def scenario() -> None:
        await service.set_parsing_enabled(True)
        await service.tick()

    asyncio.run(scenario())
    dump = service.debug_dump()

    assert dump["state"] == "polling"
    assert dump["parsing_enabled"] is True
    assert dump["ledger"]["total_processed"] == 1
    assert dump["ledger"]["storage_key"] == PROCESSED_SMS_STORAGE_KEY
    assert dump["ledger"]["sample"][0].startswith("sms_")
    assert dump["window"]["started_at"] == NOW_MS
    assert dump["window"]["started_at_iso"] == "2024-01-01T00:00:00.000Z"


def test_background_polling_loop_runs_ticks_until_disabled() -> None:
    inbox = FakeInbox([_netflix()])
    service, _, _, payments, _, _ = _make_service(inbox, poll_in_background=True, interval_seconds=0.01)

    async def scenario() -> int:
        await service.set_parsing_enabled(True)
        while len(inbox.calls) < 3:
            await asyncio.wait_for(inbox.called.wait(), timeout=2)
            inbox.called.clear()
        await service.set_parsing_enabled(False)
        calls_at_disable = len(inbox.calls)
        await asyncio.sleep(0.05)
        assert len(inbox.calls) <= calls_at_disable + 1
        await service.shutdown()
        return calls_at_disable

    calls = asyncio.run(scenario())

    assert calls >= 3
    assert len(payments.created) == 1
    assert service.state is IngestionState.STOPPED


def test_tick_honors_explicit_zero_batch() -> None:
    inbox = FakeInbox([_netflix()])
    service, _, _, payments, _, _ = _make_service(inbox)

    summary = asyncio.run(service.tick(0))

    assert inbox.calls == [0]
    assert summary.checked == 0
    assert payments.created == []

# tests/test_polling.py
import asyncio
import threading
from datetime import timedelta

import pytest

from fanconnect.ledger import SubscriptionLedger
from fanconnect.messaging import MessagingService
from fanconnect.polling import (
    ConversationListWatcher,
    ConversationWatcher,
    IntervalTask,
    UnreadBadgeWatcher,
)


@pytest.fixture
def messaging(db, clock):
    return MessagingService(db, now=clock)


@pytest.fixture
def conversation(db, clock, creator, fan, messaging):
    SubscriptionLedger(db, now=clock).subscribe_to_creator(creator.id, 1, fan.id)
    return messaging.get_or_create_conversation(fan.id, creator.id)


def test_conversation_watcher_emits_new_messages_and_marks_read(creator, fan, messaging, conversation):
    batches = []
    watcher = ConversationWatcher(messaging, conversation.id, creator.id, batches.append)

    messaging.send_direct_message(conversation.id, fan.id, creator.id, "one")
    watcher.tick()
    assert [[m.message_text for m in b] for b in batches] == [["one"]]
    assert messaging.unread_count(creator.id) == 0

    # nothing new -> no emission
    watcher.tick()
    assert len(batches) == 1

    messaging.send_direct_message(conversation.id, fan.id, creator.id, "two")
    watcher.tick()
    assert [m.message_text for m in batches[-1]] == ["two"]


def test_conversation_watcher_leaves_own_messages_unread(creator, fan, messaging, conversation):
    watcher = ConversationWatcher(messaging, conversation.id, fan.id, lambda msgs: None)
    messaging.send_direct_message(conversation.id, fan.id, creator.id, "from fan")

    watcher.tick()
    assert messaging.unread_count(creator.id) == 1


def test_conversation_list_watcher(creator, fan, messaging, conversation):
    updates = []
    ConversationListWatcher(messaging, creator.id, updates.append).tick()
    assert [s.other_participant.id for s in updates[0]] == [fan.id]


def test_unread_badge_emits_only_on_change(creator, fan, messaging, conversation):
    counts = []
    watcher = UnreadBadgeWatcher(messaging, creator.id, counts.append)

    watcher.tick()
    watcher.tick()
    messaging.send_direct_message(conversation.id, fan.id, creator.id, "hi")
    watcher.tick()
    watcher.tick()
    messaging.mark_conversation_as_read(conversation.id, creator.id)
    watcher.tick()

    assert counts == [0, 1, 0]


def test_interval_task_runs_until_stopped():
    ticks = []

    async def scenario():
        task = IntervalTask(0.01, lambda: ticks.append(1), name="test")
        task.start()
        assert task.running
        await asyncio.sleep(0.05)
        await task.stop()
        assert not task.running

    asyncio.run(scenario())
    assert len(ticks) >= 2


def test_interval_task_survives_callback_errors():
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")

    async def scenario():
        task = IntervalTask(0.01, flaky)
        task.start()
        await asyncio.sleep(0.05)
        await task.stop()

    asyncio.run(scenario())
    assert len(calls) >= 2


def test_interval_task_awaits_coroutine_callbacks():
    seen = []

    async def callback():
        seen.append("tick")

    asyncio.run(IntervalTask(1, callback).run_once())
    assert seen == ["tick"]


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        IntervalTask(0, lambda: None)


def test_conversation_watcher_delivers_late_commit_with_earlier_timestamp(
    creator, fan, messaging, conversation, clock
):
    start = clock.current
    delivered = []
    watcher = ConversationWatcher(
        messaging,
        conversation.id,
        creator.id,
        lambda msgs: delivered.extend(m.message_text for m in msgs),
        overlap=30,
    )

    clock.set(start + timedelta(seconds=2))
    messaging.send_direct_message(conversation.id, fan.id, creator.id, "B")
    watcher.tick()

    # stamped before B but only visible now
    clock.set(start + timedelta(seconds=1))
    messaging.send_direct_message(conversation.id, fan.id, creator.id, "A")
    watcher.tick()
    watcher.tick()

    assert delivered == ["B", "A"]
    assert messaging.unread_count(creator.id) == 0


def test_conversation_watcher_steps_past_a_full_window(creator, fan, messaging, conversation):
    delivered = []
    watcher = ConversationWatcher(
        messaging,
        conversation.id,
        creator.id,
        lambda msgs: delivered.extend(m.message_text for m in msgs),
        window_limit=2,
    )

    messaging.send_direct_message(conversation.id, fan.id, creator.id, "one")
    messaging.send_direct_message(conversation.id, fan.id, creator.id, "two")
    watcher.tick()
    messaging.send_direct_message(conversation.id, fan.id, creator.id, "three")
    watcher.tick()

    assert delivered == ["one", "two", "three"]


def test_sync_callbacks_run_off_the_event_loop_thread():
    threads = []

    async def scenario():
        loop_thread = threading.get_ident()
        await IntervalTask(1, lambda: threads.append(threading.get_ident())).run_once()
        return loop_thread

    loop_thread = asyncio.run(scenario())
    assert len(threads) == 1
    assert threads[0] != loop_thread

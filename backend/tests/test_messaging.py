# tests/test_messaging.py
import threading

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fanconnect import models
from fanconnect.database import Base, make_engine
from fanconnect.errors import NotConfigured, NotFound, PermissionDenied, ValidationError
from fanconnect.ledger import SubscriptionLedger
from fanconnect.messaging import MessagingService, canonical_pair
from fanconnect.timeutil import utcnow


@pytest.fixture
def messaging(db, clock):
    return MessagingService(db, now=clock)


@pytest.fixture
def ledger(db, clock):
    return SubscriptionLedger(db, now=clock)


@pytest.fixture
def subscribed(creator, fan, ledger):
    ledger.subscribe_to_creator(creator.id, 1, fan.id)


@pytest.fixture
def conversation(creator, fan, messaging):
    return messaging.get_or_create_conversation(fan.id, creator.id)


def _conversation_count(db) -> int:
    return db.scalar(select(func.count(models.Conversation.id)))


# -----------------------------
# Conversations
# -----------------------------
def test_get_or_create_is_commutative(db, creator, fan, messaging):
    a = messaging.get_or_create_conversation(fan.id, creator.id)
    b = messaging.get_or_create_conversation(creator.id, fan.id)

    assert a.id == b.id
    assert _conversation_count(db) == 1
    assert (a.participant1_id, a.participant2_id) == canonical_pair(fan.id, creator.id)


def test_racing_creator_falls_back_to_existing_row(db, creator, fan, messaging, monkeypatch):
    existing = messaging.get_or_create_conversation(fan.id, creator.id)
    existing_id = existing.id

    # Simulate losing the race: the first lookup misses the row the other side just wrote.
    real_find = messaging._find_conversation
    calls = []

    def stale_find(p1, p2):
        calls.append((p1, p2))
        if len(calls) == 1:
            return None
        return real_find(p1, p2)

    monkeypatch.setattr(messaging, "_find_conversation", stale_find)

    conv = messaging.get_or_create_conversation(creator.id, fan.id)
    assert conv.id == existing_id
    assert len(calls) == 2
    assert _conversation_count(db) == 1


def test_simultaneous_first_contact_on_file_store(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(engine)
    rounds = 20
    fan_ids = [f"fan-{i:02d}" for i in range(rounds)]
    with Session(engine) as s:
        s.add(models.Profile(id="creator-1", role=models.ROLE_CREATOR))
        s.add_all([models.Profile(id=fid, role=models.ROLE_FAN) for fid in fan_ids])
        s.commit()

    barrier = threading.Barrier(2)
    results = {0: [], 1: []}
    errors = []

    def open_from(side):
        for fid in fan_ids:
            a, b = (fid, "creator-1") if side == 0 else ("creator-1", fid)
            barrier.wait(timeout=30)
            # one session per call, as with one request each
            with Session(engine, expire_on_commit=False) as session:
                try:
                    conv = MessagingService(session, now=utcnow).get_or_create_conversation(a, b)
                    results[side].append(conv.id)
                except Exception as e:
                    errors.append(e)

    threads = [threading.Thread(target=open_from, args=(side,)) for side in (0, 1)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=120)

    try:
        assert errors == []
        assert len(results[0]) == rounds
        assert results[0] == results[1]
        with Session(engine) as s:
            assert s.scalar(select(func.count(models.Conversation.id))) == rounds
    finally:
        engine.dispose()


def test_pair_uniqueness_is_enforced_by_the_store(db, creator, fan):
    p1, p2 = canonical_pair(fan.id, creator.id)
    db.add(models.Conversation(participant1_id=p1, participant2_id=p2))
    db.commit()

    db.add(models.Conversation(participant1_id=p1, participant2_id=p2))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_cannot_talk_to_yourself(fan, messaging):
    with pytest.raises(ValidationError):
        messaging.get_or_create_conversation(fan.id, fan.id)


def test_conversation_needs_both_profiles(fan, messaging):
    with pytest.raises(NotFound):
        messaging.get_or_create_conversation(fan.id, "ghost")


# -----------------------------
# Sending
# -----------------------------
def test_send_requires_permission_at_send_time(db, creator, fan, ledger, messaging, conversation):
    creator.messages_min_tier = 2
    db.commit()
    ledger.subscribe_to_creator(creator.id, 1, fan.id)

    with pytest.raises(PermissionDenied) as exc:
        messaging.send_direct_message(conversation.id, fan.id, creator.id, "hi")
    assert exc.value.code == "SUBSCRIPTION_REQUIRED"
    assert exc.value.extra["reason"] == "tier_too_low"
    assert exc.value.extra["required_tier"] == 2
    assert messaging.get_messages(conversation.id, fan.id) == []

    ledger.subscribe_to_creator(creator.id, 2, fan.id)
    msg = messaging.send_direct_message(conversation.id, fan.id, creator.id, "hi")
    assert msg.read_at is None
    assert msg.recipient_id == creator.id


def test_expiry_between_open_and_send_denies(creator, fan, ledger, messaging, conversation, clock):
    sub = ledger.subscribe_to_creator(creator.id, 3, fan.id)
    messaging.send_direct_message(conversation.id, fan.id, creator.id, "before")

    clock.set(sub.expires_at)
    with pytest.raises(PermissionDenied):
        messaging.send_direct_message(conversation.id, fan.id, creator.id, "after")


def test_creator_cannot_message_non_subscriber(creator, fan, messaging, conversation):
    with pytest.raises(PermissionDenied) as exc:
        messaging.send_direct_message(conversation.id, creator.id, fan.id, "hello")
    assert exc.value.code == "MESSAGING_NOT_ALLOWED"


def test_message_length_limit(creator, fan, subscribed, messaging, conversation):
    assert messaging.send_direct_message(conversation.id, fan.id, creator.id, "x" * 5000)

    with pytest.raises(ValidationError) as exc:
        messaging.send_direct_message(conversation.id, fan.id, creator.id, "x" * 5001)
    assert exc.value.code == "TEXT_TOO_LONG"

    with pytest.raises(ValidationError):
        messaging.send_direct_message(conversation.id, fan.id, creator.id, "  \n ")


def test_message_text_is_stored_as_written(creator, fan, subscribed, messaging, conversation):
    msg = messaging.send_direct_message(conversation.id, fan.id, creator.id, "  hi there\n")
    assert msg.message_text == "  hi there\n"
    assert messaging.get_messages(conversation.id, creator.id)[0].message_text == "  hi there\n"


def test_outsiders_cannot_send_or_read(make_profile, creator, fan, subscribed, messaging, conversation):
    outsider = make_profile("fan-2")

    with pytest.raises(PermissionDenied):
        messaging.send_direct_message(conversation.id, outsider.id, creator.id, "hi")
    with pytest.raises(PermissionDenied):
        messaging.get_messages(conversation.id, outsider.id)


def test_recipient_must_be_the_other_participant(make_profile, creator, fan, subscribed, messaging, conversation):
    other = make_profile("fan-2")
    with pytest.raises(PermissionDenied):
        messaging.send_direct_message(conversation.id, creator.id, other.id, "hi")


def test_send_bumps_last_message_at(creator, fan, subscribed, messaging, conversation):
    before = conversation.last_message_at
    msg = messaging.send_direct_message(conversation.id, fan.id, creator.id, "hi")

    refreshed = messaging.get_conversation(conversation.id)
    assert refreshed.last_message_at == msg.created_at
    assert refreshed.last_message_at > before


def test_messages_in_send_order_with_cursor(creator, fan, subscribed, messaging, conversation):
    sent = [
        messaging.send_direct_message(conversation.id, fan.id, creator.id, "one"),
        messaging.send_direct_message(conversation.id, creator.id, fan.id, "two"),
        messaging.send_direct_message(conversation.id, fan.id, creator.id, "three"),
    ]

    assert [m.message_text for m in messaging.get_messages(conversation.id, fan.id)] == ["one", "two", "three"]
    newer = messaging.get_messages(conversation.id, creator.id, after=sent[0].created_at)
    assert [m.message_text for m in newer] == ["two", "three"]
    assert len(messaging.get_messages(conversation.id, fan.id, limit=2)) == 2


# -----------------------------
# Read receipts / unread counts
# -----------------------------
def test_mark_conversation_as_read_is_idempotent(creator, fan, subscribed, messaging, conversation):
    messaging.send_direct_message(conversation.id, fan.id, creator.id, "one")
    messaging.send_direct_message(conversation.id, fan.id, creator.id, "two")
    messaging.send_direct_message(conversation.id, creator.id, fan.id, "reply")

    assert messaging.unread_count(creator.id) == 2
    assert messaging.mark_conversation_as_read(conversation.id, creator.id) == 2
    assert messaging.mark_conversation_as_read(conversation.id, creator.id) == 0
    assert messaging.unread_count(creator.id) == 0

    # the creator's own message to the fan is untouched
    assert messaging.unread_count(fan.id) == 1


def test_read_at_is_never_overwritten(creator, fan, subscribed, messaging, conversation, clock):
    msg = messaging.send_direct_message(conversation.id, fan.id, creator.id, "one")
    messaging.mark_conversation_as_read(conversation.id, creator.id)
    first_read = messaging.get_messages(conversation.id, creator.id)[0].read_at

    clock.advance(hours=1)
    assert messaging.mark_message_as_read(msg.id, creator.id) is False
    assert messaging.get_messages(conversation.id, creator.id)[0].read_at == first_read


def test_only_recipient_marks_a_message(creator, fan, subscribed, messaging, conversation):
    msg = messaging.send_direct_message(conversation.id, fan.id, creator.id, "one")

    assert messaging.mark_message_as_read(msg.id, fan.id) is False
    assert messaging.mark_message_as_read(msg.id, creator.id) is True


def test_list_conversations_newest_first_with_unread(make_profile, ledger, creator, subscribed, messaging):
    fan_a = make_profile("fan-a")
    fan_b = make_profile("fan-b")
    for f in (fan_a, fan_b):
        ledger.subscribe_to_creator(creator.id, 1, f.id)

    conv_a = messaging.get_or_create_conversation(fan_a.id, creator.id)
    conv_b = messaging.get_or_create_conversation(fan_b.id, creator.id)
    messaging.send_direct_message(conv_b.id, fan_b.id, creator.id, "b1")
    messaging.send_direct_message(conv_a.id, fan_a.id, creator.id, "a1")
    messaging.send_direct_message(conv_a.id, fan_a.id, creator.id, "a2")

    summaries = messaging.list_conversations(creator.id)
    assert [s.other_participant.id for s in summaries] == [fan_a.id, fan_b.id]
    assert [s.unread_count for s in summaries] == [2, 1]
    assert summaries[0].last_message.message_text == "a2"
    assert messaging.unread_count(creator.id, conversation_id=conv_a.id) == 2


def test_unconfigured_store(clock):
    messaging = MessagingService(None, now=clock)
    assert messaging.list_conversations("fan-1") == []
    assert messaging.unread_count("fan-1") == 0
    assert messaging.get_messages("c", "fan-1") == []
    with pytest.raises(NotConfigured):
        messaging.get_or_create_conversation("fan-1", "creator-1")
    with pytest.raises(NotConfigured):
        messaging.send_direct_message("c", "fan-1", "creator-1", "hi")

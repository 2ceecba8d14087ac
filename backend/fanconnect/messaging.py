# fanconnect/messaging.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fanconnect import config, models
from fanconnect.access import AccessEvaluator
from fanconnect.errors import NotFound, PermissionDenied, ValidationError, read_path, write_path
from fanconnect.profiles import ProfileService
from fanconnect.timeutil import Clock, utcnow

logger = logging.getLogger(__name__)


@dataclass
class ConversationSummary:
    conversation: models.Conversation
    other_participant: models.Profile
    last_message: Optional[models.DirectMessage]
    unread_count: int


def canonical_pair(user_a: str, user_b: str) -> tuple[str, str]:
    return (user_a, user_b) if user_a < user_b else (user_b, user_a)


class MessagingService:
    def __init__(self, db: Optional[Session], now: Clock = utcnow) -> None:
        self.db = db
        self.now = now
        self.profiles = ProfileService(db, now=now)
        self.access = AccessEvaluator(db, now=now)

    # -------------------------------------------------
    # Conversations
    # -------------------------------------------------
    def _find_conversation(self, p1: str, p2: str) -> Optional[models.Conversation]:
        return self.db.scalar(
            select(models.Conversation).where(
                models.Conversation.participant1_id == p1,
                models.Conversation.participant2_id == p2,
            )
        )

    @write_path
    def get_or_create_conversation(self, user_a: str, user_b: str) -> models.Conversation:
        """
        Commutative get-or-create. Pairs are stored in canonical order under
        a UNIQUE constraint, so two first contacts racing each other end up
        on the same row: the loser's insert fails and it re-reads. On SQLite
        writers are serialized at BEGIN, so the second caller finds the row.
        """
        if user_a == user_b:
            raise ValidationError("Cannot start a conversation with yourself", code="SELF_CONVERSATION")
        for uid in (user_a, user_b):
            if self.db.get(models.Profile, uid) is None:
                raise NotFound("Profile not found", code="PROFILE_NOT_FOUND", profile_id=uid)

        p1, p2 = canonical_pair(user_a, user_b)
        existing = self._find_conversation(p1, p2)
        if existing is not None:
            return existing

        now = self.now()
        try:
            with self.db.begin_nested():
                conv = models.Conversation(
                    participant1_id=p1,
                    participant2_id=p2,
                    last_message_at=now,
                    created_at=now,
                )
                self.db.add(conv)
            self.db.commit()
            logger.info("conversation %s created for %s/%s", conv.id, p1, p2)
            return conv
        except IntegrityError:
            # Someone else created it between our lookup and insert
            self.db.rollback()
            existing = self._find_conversation(p1, p2)
            if existing is None:
                raise
            return existing

    @read_path(default=lambda: None)
    def get_conversation(self, conversation_id: str) -> Optional[models.Conversation]:
        return self.db.get(models.Conversation, conversation_id)

    def _require_participant(self, conversation_id: str, user_id: str) -> models.Conversation:
        conv = self.db.get(models.Conversation, conversation_id)
        if conv is None:
            raise NotFound("Conversation not found", code="CONVERSATION_NOT_FOUND")
        if not conv.has_participant(user_id):
            raise PermissionDenied("Not a participant of this conversation", code="NOT_A_PARTICIPANT")
        return conv

    # -------------------------------------------------
    # Messages
    # -------------------------------------------------
    @write_path
    def send_direct_message(
        self,
        conversation_id: str,
        sender_id: str,
        recipient_id: str,
        text: str,
    ) -> models.DirectMessage:
        body = text or ""
        if not body.strip():
            raise ValidationError("Message cannot be empty", field="message_text")
        if len(body) > config.MESSAGE_MAX_LENGTH:
            raise ValidationError(
                f"Message exceeds {config.MESSAGE_MAX_LENGTH} characters",
                code="TEXT_TOO_LONG",
                field="message_text",
                max_length=config.MESSAGE_MAX_LENGTH,
            )

        conv = self._require_participant(conversation_id, sender_id)
        if sender_id == recipient_id or conv.other_participant(sender_id) != recipient_id:
            raise PermissionDenied("Recipient is not part of this conversation", code="NOT_A_PARTICIPANT")

        # Re-derived at send time; an earlier UI check is never trusted.
        decision = self.access.message_decision(sender_id, recipient_id)
        if not decision.allowed:
            raise PermissionDenied(
                "You are not allowed to message this user",
                code="SUBSCRIPTION_REQUIRED" if decision.reason in ("no_active_subscription", "tier_too_low") else "MESSAGING_NOT_ALLOWED",
                reason=decision.reason,
                required_tier=decision.required_tier,
                effective_tier=decision.effective_tier,
                creator_id=recipient_id,
            )

        now = self.now()
        msg = models.DirectMessage(
            conversation_id=conv.id,
            sender_id=sender_id,
            recipient_id=recipient_id,
            message_text=body,
            created_at=now,
            read_at=None,
        )
        self.db.add(msg)
        conv.last_message_at = now
        self.db.commit()
        self.db.refresh(msg)
        return msg

    @read_path(default=list)
    def get_messages(
        self,
        conversation_id: str,
        reader_id: str,
        limit: int = config.CONVERSATION_PAGE_SIZE,
        after: Optional[datetime] = None,
    ) -> list[models.DirectMessage]:
        conv = self.db.get(models.Conversation, conversation_id)
        if conv is None:
            return []
        if not conv.has_participant(reader_id):
            raise PermissionDenied("Not a participant of this conversation", code="NOT_A_PARTICIPANT")

        stmt = select(models.DirectMessage).where(models.DirectMessage.conversation_id == conversation_id)
        if after is not None:
            stmt = stmt.where(models.DirectMessage.created_at > after)
        stmt = stmt.order_by(models.DirectMessage.created_at.asc(), models.DirectMessage.id.asc()).limit(limit)
        return list(self.db.scalars(stmt).all())

    # -------------------------------------------------
    # Read receipts
    # -------------------------------------------------
    @write_path
    def mark_conversation_as_read(self, conversation_id: str, reader_id: str) -> int:
        """Set read_at on unread messages addressed to reader. Idempotent."""
        self._require_participant(conversation_id, reader_id)
        result = self.db.execute(
            update(models.DirectMessage)
            .where(
                models.DirectMessage.conversation_id == conversation_id,
                models.DirectMessage.recipient_id == reader_id,
                models.DirectMessage.read_at.is_(None),
            )
            .values(read_at=self.now())
        )
        self.db.commit()
        return int(result.rowcount or 0)

    @write_path
    def mark_message_as_read(self, message_id: str, reader_id: str) -> bool:
        result = self.db.execute(
            update(models.DirectMessage)
            .where(
                models.DirectMessage.id == message_id,
                models.DirectMessage.recipient_id == reader_id,
                models.DirectMessage.read_at.is_(None),
            )
            .values(read_at=self.now())
        )
        self.db.commit()
        return bool(result.rowcount)

    @read_path(default=lambda: 0)
    def unread_count(self, user_id: str, conversation_id: Optional[str] = None) -> int:
        stmt = select(func.count(models.DirectMessage.id)).where(
            models.DirectMessage.recipient_id == user_id,
            models.DirectMessage.read_at.is_(None),
        )
        if conversation_id is not None:
            stmt = stmt.where(models.DirectMessage.conversation_id == conversation_id)
        return int(self.db.scalar(stmt) or 0)

    # -------------------------------------------------
    # Conversation list
    # -------------------------------------------------
    @read_path(default=list)
    def list_conversations(self, user_id: str) -> list[ConversationSummary]:
        conversations = self.db.scalars(
            select(models.Conversation)
            .where(
                or_(
                    models.Conversation.participant1_id == user_id,
                    models.Conversation.participant2_id == user_id,
                )
            )
            .order_by(models.Conversation.last_message_at.desc())
        ).all()

        out: list[ConversationSummary] = []
        for conv in conversations:
            other = self.db.get(models.Profile, conv.other_participant(user_id))
            if other is None:
                continue

            last = self.db.scalar(
                select(models.DirectMessage)
                .where(models.DirectMessage.conversation_id == conv.id)
                .order_by(models.DirectMessage.created_at.desc(), models.DirectMessage.id.desc())
                .limit(1)
            )
            out.append(
                ConversationSummary(
                    conversation=conv,
                    other_participant=other,
                    last_message=last,
                    unread_count=self.unread_count(user_id, conversation_id=conv.id),
                )
            )
        return out

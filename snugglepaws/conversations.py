"""Conversation summaries, thread fetch and read tracking over messages."""

from __future__ import annotations

from typing import Iterable

from snugglepaws.models import ConversationSummary, Message
from snugglepaws.store.base import Repository


def summarize_conversations(
    messages: Iterable[Message], user_id: int
) -> list[ConversationSummary]:
    """Build one summary per counterparty from a flat message list.

    Args:
        messages: Messages involving ``user_id`` in any order.
        user_id: The querying user.

    Returns:
        Summaries sorted by most recent message, newest first. "Most recent"
        compares ``(created_at, id)`` so equal timestamps resolve to the
        higher id.
    """
    last: dict[int, Message] = {}
    unread: dict[int, int] = {}
    for message in messages:
        other = message.other_party(user_id)
        current = last.get(other)
        if current is None or message.recency_key > current.recency_key:
            last[other] = message
        counts = message.receiver_id == user_id and not message.is_read
        unread[other] = unread.get(other, 0) + (1 if counts else 0)

    summaries = [
        ConversationSummary(
            counterparty_id=other,
            last_message=message,
            unread_count=unread[other],
        )
        for other, message in last.items()
    ]
    summaries.sort(key=lambda summary: summary.last_message.recency_key, reverse=True)
    return summaries


class ConversationService:
    def __init__(self, store: Repository):
        self.store = store

    def summaries(self, user_id: int) -> list[ConversationSummary]:
        return summarize_conversations(self.store.list_messages(user_id), user_id)

    def get_conversation(self, user_a: int, user_b: int) -> list[Message]:
        """Return messages exchanged between exactly this pair, oldest first."""
        return self.store.get_conversation(user_a, user_b)

    def mark_read(self, receiver_id: int, sender_id: int) -> bool:
        return self.store.mark_messages_read(receiver_id, sender_id)

    def open_thread(self, user_id: int, other_id: int) -> list[Message]:
        """Mark the counterparty's messages read, then return the thread.

        Marking happens first so the returned thread and any later summary
        already show zero unread for ``other_id``.
        """
        self.mark_read(user_id, other_id)
        return self.get_conversation(user_id, other_id)

    def count_unread(self, user_id: int) -> int:
        return self.store.count_unread(user_id)

"""
Message Ledger: participant-only append and fetch for a conversation.

Fetching a thread marks every message the requester did not send as read,
in one batched update issued after the response rows are built, so callers
see the read flags as they were before the fetch.
"""

import logging
from typing import Dict, List, Optional

from pymongo import ASCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError

from conversations import ConversationManager
from database import create_document, find_by_id, timestamp_view, utcnow
from errors import InvalidInput
from schemas import Message

logger = logging.getLogger(__name__)


def message_view(doc: dict, sender_first_name: Optional[str] = None) -> dict:
    view = {
        "id": str(doc["_id"]),
        "conversationId": doc.get("conversationId"),
        "senderId": doc.get("senderId"),
        "content": doc.get("content"),
        "createdAt": timestamp_view(doc.get("createdAt")),
        "read": bool(doc.get("read", False)),
    }
    if sender_first_name is not None:
        view["senderFirstName"] = sender_first_name
    return view


class MessageLedger:
    def __init__(self, db: Database, conversations: Optional[ConversationManager] = None):
        self.db = db
        self.messages = db["messages"]
        self.conversations = conversations or ConversationManager(db)

    def list(self, conversation_id: str, user_id: str) -> List[dict]:
        self.conversations.load(conversation_id, user_id)
        docs = list(
            self.messages.find({"conversationId": conversation_id})
            .sort([("createdAt", ASCENDING), ("_id", ASCENDING)])
        )

        first_names: Dict[str, str] = {}
        views = []
        for doc in docs:
            sender_id = doc.get("senderId")
            if sender_id not in first_names:
                sender = find_by_id(self.db, "users", sender_id)
                first_names[sender_id] = (sender or {}).get("firstName") or ""
            views.append(message_view(doc, first_names[sender_id]))

        unread = [doc["_id"] for doc in docs if doc.get("senderId") != user_id and not doc.get("read")]
        if unread:
            self.mark_read(unread)
        return views

    def mark_read(self, message_ids: list) -> int:
        # Filtering on read=False keeps a retried batch a no-op
        result = self.messages.update_many(
            {"_id": {"$in": message_ids}, "read": False},
            {"$set": {"read": True}},
        )
        logger.debug("Marked %d messages read", result.modified_count)
        return result.modified_count

    def append(self, conversation_id: str, sender_id: str, content: Optional[str]) -> dict:
        text = (content or "").strip()
        if not text:
            raise InvalidInput("Message content is required")
        self.conversations.load(conversation_id, sender_id)

        now = utcnow()
        message = Message(conversation_id=conversation_id, sender_id=sender_id, content=text, created_at=now)
        message_id = create_document(self.db, "messages", message)

        # The message is sent even if the summary cannot be refreshed
        try:
            self.conversations.record_last_message(conversation_id, text, now)
        except PyMongoError:
            logger.exception("Failed to update last message of conversation %s", conversation_id)

        doc = message.model_dump(by_alias=True)
        doc["_id"] = message_id
        return message_view(doc)

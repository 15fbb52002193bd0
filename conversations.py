"""
Conversation Manager.

A conversation joins exactly two participants around one listing. New
conversations are keyed by a digest of the sorted participant pair and the
listing id, so concurrent creators collide on the primary key instead of
producing duplicates. Conversations created before that keying existed are
still found by scanning the sender's threads.
"""

import hashlib
import json
import logging
from datetime import datetime
from typing import List, Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, find_by_id, id_filter, timestamp_key, timestamp_view, utcnow
from errors import Forbidden, InvalidInput, NotFound
from schemas import Conversation, Message

logger = logging.getLogger(__name__)

UNKNOWN_LISTING_TITLE = "Unknown Listing"


def conversation_key(user_a: str, user_b: str, listing_id: str) -> str:
    first, second = sorted([user_a, user_b])
    raw = json.dumps([first, second, listing_id], separators=(",", ":"))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def is_thread_for(doc: dict, user_a: str, user_b: str, listing_id: str) -> bool:
    return set(doc.get("participants", [])) == {user_a, user_b} and doc.get("listingId") == listing_id


class ConversationManager:
    def __init__(self, db: Database):
        self.db = db
        self.conversations = db["conversations"]
        self.messages = db["messages"]

    def find(self, sender_id: str, recipient_id: str, listing_id: str) -> Optional[str]:
        key = conversation_key(sender_id, recipient_id, listing_id)
        doc = self.conversations.find_one({"_id": key})
        if doc is not None and is_thread_for(doc, sender_id, recipient_id, listing_id):
            return key
        for doc in self.conversations.find({"participants": sender_id}):
            if is_thread_for(doc, sender_id, recipient_id, listing_id):
                return str(doc["_id"])
        return None

    def find_or_create(self, sender_id: str, recipient_id: Optional[str], listing_id: Optional[str],
                       initial_message: Optional[str]) -> str:
        """Return the thread for (sender, recipient, listing), creating it if needed.

        The initial message is appended in both cases. The listing itself is
        not required to exist.
        """
        text = (initial_message or "").strip()
        if not listing_id or not recipient_id or not text:
            raise InvalidInput("Missing required fields: listingId, recipientId, initialMessage")
        if sender_id == recipient_id:
            raise InvalidInput("Cannot message yourself")

        now = utcnow()
        created = False
        conversation_id = self.find(sender_id, recipient_id, listing_id)
        if conversation_id is None:
            key = conversation_key(sender_id, recipient_id, listing_id)
            conversation = Conversation(
                participants=[sender_id, recipient_id],
                listing_id=listing_id,
                last_message=text,
                last_message_at=now,
                created_at=now,
            )
            try:
                conversation_id = create_document(self.db, "conversations", conversation, doc_id=key)
                created = True
                logger.info("Created conversation %s for listing %s", conversation_id, listing_id)
            except DuplicateKeyError:
                existing = self.conversations.find_one({"_id": key})
                if existing is None or not is_thread_for(existing, sender_id, recipient_id, listing_id):
                    raise
                logger.info("Conversation %s created concurrently, reusing it", key)
                conversation_id = key

        create_document(self.db, "messages", Message(
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=text,
            created_at=now,
        ))
        if not created:
            self.record_last_message(conversation_id, text, now)
        return conversation_id

    def load(self, conversation_id: str, user_id: str) -> dict:
        doc = find_by_id(self.db, "conversations", conversation_id)
        if doc is None:
            raise NotFound("Conversation not found")
        if user_id not in doc.get("participants", []):
            raise Forbidden("You are not a participant in this conversation")
        return doc

    def record_last_message(self, conversation_id: str, content: str, at: datetime) -> None:
        self.conversations.update_one(
            id_filter(conversation_id),
            {"$set": {"lastMessage": content, "lastMessageAt": at}},
        )

    def get(self, conversation_id: str, user_id: str) -> dict:
        return self._view(self.load(conversation_id, user_id), user_id)

    def list(self, user_id: str) -> List[dict]:
        views = [self._view(doc, user_id) for doc in self.conversations.find({"participants": user_id})]
        views.sort(key=lambda view: timestamp_key(view["lastMessageAt"]), reverse=True)
        return views

    def _other_user(self, participants: List[str], user_id: str) -> Optional[dict]:
        other_id = next((p for p in participants if p != user_id), None)
        if other_id is None:
            return None
        user = find_by_id(self.db, "users", other_id)
        if user is None:
            return None
        return {
            "uid": other_id,
            "firstName": user.get("firstName"),
            "lastName": user.get("lastName"),
            "profilePicture": user.get("profilePicture"),
        }

    def _view(self, doc: dict, user_id: str) -> dict:
        participants = doc.get("participants", [])
        listing = find_by_id(self.db, "listings", doc.get("listingId"))
        return {
            "id": str(doc["_id"]),
            "participants": participants,
            "listingId": doc.get("listingId"),
            "listingTitle": listing.get("title") if listing else UNKNOWN_LISTING_TITLE,
            "otherUser": self._other_user(participants, user_id),
            "lastMessage": doc.get("lastMessage") or "",
            "lastMessageAt": timestamp_view(doc.get("lastMessageAt")),
        }

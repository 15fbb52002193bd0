from datetime import datetime, timezone

import pytest
from pymongo.errors import PyMongoError

from errors import Forbidden, InvalidInput, NotFound
from messages import MessageLedger


def _start(client, auth, sender="alice", recipient="bob", listing_id="l1", text="Is this available?"):
    r = client.post("/conversations", headers=auth(sender),
                    json={"listingId": listing_id, "recipientId": recipient, "initialMessage": text})
    assert r.status_code == 201
    return r.json()["conversationId"]


def test_recipient_fetch_marks_unread_as_read(client, auth, db):
    conversation_id = _start(client, auth)
    client.post(f"/messages/{conversation_id}", headers=auth("alice"), json={"content": "Can pick up today"})

    first = client.get(f"/messages/{conversation_id}", headers=auth("bob"))
    assert first.status_code == 200
    # Response reflects the state before the fetch
    assert [m["read"] for m in first.json()] == [False, False]
    assert db["messages"].count_documents({"conversationId": conversation_id, "read": False}) == 0

    second = client.get(f"/messages/{conversation_id}", headers=auth("bob"))
    assert [m["read"] for m in second.json()] == [True, True]
    assert db["messages"].count_documents({"conversationId": conversation_id, "read": True}) == 2


def test_sender_fetch_leaves_own_messages_unread(client, auth, db):
    conversation_id = _start(client, auth)
    r = client.get(f"/messages/{conversation_id}", headers=auth("alice"))
    assert r.status_code == 200
    assert db["messages"].count_documents({"conversationId": conversation_id, "read": False}) == 1


def test_fetch_only_marks_the_other_participants_messages(client, auth, db):
    conversation_id = _start(client, auth)
    client.post(f"/messages/{conversation_id}", headers=auth("bob"), json={"content": "Yes it is"})

    client.get(f"/messages/{conversation_id}", headers=auth("alice"))

    assert db["messages"].find_one({"senderId": "alice"})["read"] is False
    assert db["messages"].find_one({"senderId": "bob"})["read"] is True


def test_messages_ordered_and_enriched(client, auth, db, add_user):
    add_user("alice", "Alice")
    db["conversations"].insert_one({"_id": "c1", "participants": ["alice", "bob"], "listingId": "l1"})

    def at(seconds):
        return datetime.fromtimestamp(seconds, tz=timezone.utc)

    db["messages"].insert_many([
        {"conversationId": "c1", "senderId": "bob", "content": "second", "createdAt": at(200), "read": False},
        {"conversationId": "c1", "senderId": "alice", "content": "first", "createdAt": at(100), "read": False},
        {"conversationId": "c1", "senderId": "stranger", "content": "third", "createdAt": at(300)},
        {"conversationId": "c2", "senderId": "bob", "content": "elsewhere", "createdAt": at(150)},
    ])

    r = client.get("/messages/c1", headers=auth("alice"))
    body = r.json()
    assert [m["content"] for m in body] == ["first", "second", "third"]
    assert body[0]["senderFirstName"] == "Alice"
    assert body[2]["senderFirstName"] == ""
    assert body[0]["createdAt"] == {"seconds": 100, "nanoseconds": 0}
    assert body[2]["read"] is False


def test_message_access_rules(client, auth, db):
    db["conversations"].insert_one({"_id": "c1", "participants": ["alice", "bob"], "listingId": "l1"})
    db["messages"].insert_one({"conversationId": "c1", "senderId": "alice", "content": "secret", "read": False})

    assert client.get("/messages/nope", headers=auth("alice")).status_code == 404
    r = client.get("/messages/c1", headers=auth("mallory"))
    assert r.status_code == 403
    assert "secret" not in r.text
    assert db["messages"].find_one({"conversationId": "c1"})["read"] is False
    assert client.get("/messages/c1").status_code == 401


def test_send_message(client, auth, db):
    conversation_id = _start(client, auth)
    r = client.post(f"/messages/{conversation_id}", headers=auth("bob"), json={"content": "  Sure, 5pm?  "})
    assert r.status_code == 201
    message = r.json()
    assert message["content"] == "Sure, 5pm?"
    assert message["senderId"] == "bob"
    assert message["conversationId"] == conversation_id
    assert message["read"] is False
    assert message["createdAt"]["seconds"] > 0

    conversation = db["conversations"].find_one({"_id": conversation_id})
    assert conversation["lastMessage"] == "Sure, 5pm?"


def test_send_message_errors(client, auth, db):
    db["conversations"].insert_one({"_id": "c1", "participants": ["alice", "bob"], "listingId": "l1"})
    r = client.post("/messages/c1", headers=auth("alice"), json={"content": "   "})
    assert r.status_code == 400
    assert r.json() == {"error": "Message content is required"}
    assert client.post("/messages/missing", headers=auth("alice"), json={"content": "hi"}).status_code == 404
    assert client.post("/messages/c1", headers=auth("mallory"), json={"content": "hi"}).status_code == 403
    assert client.post("/messages/c1", json={"content": "hi"}).status_code == 401
    assert db["messages"].count_documents({}) == 0


def test_append_keeps_message_when_summary_update_fails(db, monkeypatch):
    db["conversations"].insert_one({"_id": "c1", "participants": ["alice", "bob"], "listingId": "l1",
                                    "lastMessage": "before"})
    ledger = MessageLedger(db)

    def broken(*args):
        raise PyMongoError("write concern timeout")

    monkeypatch.setattr(ledger.conversations, "record_last_message", broken)
    message = ledger.append("c1", "alice", "still sent")

    assert message["content"] == "still sent"
    assert db["messages"].count_documents({"conversationId": "c1"}) == 1
    assert db["conversations"].find_one({"_id": "c1"})["lastMessage"] == "before"


def test_ledger_errors(db):
    db["conversations"].insert_one({"_id": "c1", "participants": ["alice", "bob"], "listingId": "l1"})
    ledger = MessageLedger(db)
    with pytest.raises(NotFound):
        ledger.list("c404", "alice")
    with pytest.raises(Forbidden):
        ledger.list("c1", "mallory")
    with pytest.raises(InvalidInput):
        ledger.append("c1", "alice", None)


def test_mark_read_is_retry_safe(db):
    ids = db["messages"].insert_many([
        {"conversationId": "c1", "senderId": "bob", "content": "a", "read": False},
        {"conversationId": "c1", "senderId": "bob", "content": "b", "read": False},
    ]).inserted_ids
    ledger = MessageLedger(db)
    assert ledger.mark_read(ids) == 2
    assert ledger.mark_read(ids) == 0

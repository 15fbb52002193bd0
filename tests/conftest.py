import time

import jwt
import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import IdentityVerifier, get_verifier
from database import get_db, utcnow
from main import app

TEST_SECRET = "test-secret-for-hs256-tokens"


def make_token(uid: str, name: str = "Test User", email: str = None, secret: str = TEST_SECRET,
               expires_in: int = 3600) -> str:
    now = int(time.time())
    claims = {"sub": uid, "name": name, "iat": now, "exp": now + expires_in}
    if email:
        claims["email"] = email
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def db():
    return mongomock.MongoClient()["campus_market_test"]


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_verifier] = lambda: IdentityVerifier(secret=TEST_SECRET)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    def _auth(uid: str, **kwargs) -> dict:
        return {"Authorization": f"Bearer {make_token(uid, **kwargs)}"}
    return _auth


@pytest.fixture
def add_user(db):
    def _add(uid: str, first_name: str = "", last_name: str = "", picture: str = ""):
        db["users"].insert_one({
            "_id": uid,
            "uid": uid,
            "firstName": first_name,
            "lastName": last_name,
            "profilePicture": picture,
        })
        return uid
    return _add


@pytest.fixture
def add_listing(db):
    def _add(owner: str = "seller", title: str = "Desk lamp", **fields) -> str:
        doc = {
            "title": title,
            "description": fields.pop("description", "Barely used"),
            "price": fields.pop("price", 15),
            "type": fields.pop("type", "furniture"),
            "userId": owner,
            "imageUrls": [],
            "createdAt": fields.pop("createdAt", utcnow()),
        }
        doc.update(fields)
        return str(db["listings"].insert_one(doc).inserted_id)
    return _add

import logging
from typing import List, Optional

from pymongo import DESCENDING
from pymongo.database import Database

from database import create_document, find_by_id, get_documents, timestamp_view
from errors import Forbidden, InvalidInput, NotFound
from schemas import LISTING_TYPES, CreateListingBody, Listing, UpdateListingBody

logger = logging.getLogger(__name__)


def listing_summary(doc: dict) -> dict:
    return {
        "id": str(doc["_id"]),
        "title": doc.get("title"),
        "description": doc.get("description"),
        "price": doc.get("price") or 0,
        "type": doc.get("type"),
        "clothingType": doc.get("clothingType"),
        "userId": doc.get("userId"),
        "createdAt": timestamp_view(doc.get("createdAt")),
        "imageUrls": doc.get("imageUrls") or [],
    }


def listing_detail(doc: dict) -> dict:
    view = listing_summary(doc)
    view.update({
        "condition": doc.get("condition"),
        "size": doc.get("size"),
        "gender": doc.get("gender"),
        "isPrivate": doc.get("isPrivate") or False,
        "isSold": doc.get("isSold") or False,
        "viewCount": doc.get("viewCount") or 0,
        "saveCount": doc.get("saveCount") or 0,
    })
    return view


def matches(view: dict, type: Optional[str] = None, clothing_type: Optional[str] = None,
            min_price: Optional[float] = None, max_price: Optional[float] = None,
            search: Optional[str] = None) -> bool:
    if type and view["type"] != type:
        return False
    if clothing_type and view["clothingType"] != clothing_type:
        return False
    if min_price is not None and view["price"] < min_price:
        return False
    if max_price is not None and view["price"] > max_price:
        return False
    if search:
        needle = search.lower()
        haystacks = ((view["title"] or "").lower(), (view["description"] or "").lower())
        if not any(needle in text for text in haystacks):
            return False
    return True


class ListingCatalog:
    def __init__(self, db: Database):
        self.db = db
        self.listings = db["listings"]

    def search(self, **filters) -> List[dict]:
        docs = get_documents(self.db, "listings", sort=[("createdAt", DESCENDING)])
        views = [listing_summary(doc) for doc in docs]
        return [view for view in views if matches(view, **filters)]

    def by_owner(self, user_id: str) -> List[dict]:
        views = [listing_summary(doc) for doc in get_documents(self.db, "listings", {"userId": user_id})]
        views.sort(key=lambda view: view["createdAt"]["seconds"], reverse=True)
        return views

    def create(self, user_id: str, body: CreateListingBody) -> dict:
        if not body.title or not body.description or not body.type or body.price is None:
            raise InvalidInput("Missing required fields: title, description, type, price")
        if body.type not in LISTING_TYPES:
            raise InvalidInput("Invalid listing type")
        if body.price < 0:
            raise InvalidInput("Price cannot be negative")

        listing = Listing(
            title=body.title,
            description=body.description,
            price=body.price,
            type=body.type,
            clothing_type=body.clothing_type,
            condition=body.condition,
            size=body.size,
            gender=body.gender,
            user_id=user_id,
            image_urls=body.image_urls or [],
        )
        doc = listing.model_dump(by_alias=True)
        doc["_id"] = create_document(self.db, "listings", listing)
        logger.info("User %s created listing %s", user_id, doc["_id"])
        return listing_summary(doc)

    def get(self, listing_id: str) -> dict:
        doc = find_by_id(self.db, "listings", listing_id)
        if doc is None:
            raise NotFound("Listing not found")
        return doc

    def _owned(self, listing_id: str, user_id: str, verb: str) -> dict:
        doc = self.get(listing_id)
        if doc.get("userId") != user_id:
            raise Forbidden(f"You can only {verb} your own listings")
        return doc

    def update(self, listing_id: str, user_id: str, body: UpdateListingBody) -> dict:
        doc = self._owned(listing_id, user_id, "edit")
        changes = body.model_dump(by_alias=True, exclude_unset=True)
        if "title" in changes and not (changes["title"] or "").strip():
            raise InvalidInput("Title cannot be empty")
        if changes.get("price") is not None and changes["price"] < 0:
            raise InvalidInput("Price cannot be negative")
        if "type" in changes and changes["type"] not in LISTING_TYPES:
            raise InvalidInput("Invalid listing type")

        if changes:
            self.listings.update_one({"_id": doc["_id"]}, {"$set": changes})
        doc.update(changes)
        return listing_detail(doc)

    def delete(self, listing_id: str, user_id: str) -> None:
        doc = self._owned(listing_id, user_id, "delete")
        self.listings.delete_one({"_id": doc["_id"]})
        logger.info("User %s deleted listing %s", user_id, doc["_id"])

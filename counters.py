"""
Counter Service: listing view/save counters and affiliate click counts.

Counters are display caches. Increments use the store's atomic $inc, and
the save decrement only applies while saveCount is positive so the count
never drops below zero. The savedListings records stay the source of truth
for "is saved".
"""

import logging
from typing import List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, find_by_id, id_filter, timestamp_view, utcnow
from errors import NotFound
from schemas import SavedListing

logger = logging.getLogger(__name__)


def saved_listing_key(user_id: str, listing_id: str) -> str:
    return f"{user_id}_{listing_id}"


class CounterService:
    def __init__(self, db: Database):
        self.db = db
        self.listings = db["listings"]
        self.saved = db["savedListings"]
        self.affiliates = db["affiliates"]

    def record_view(self, listing_id: str) -> int:
        """Unconditional increment used by the dedicated view-tracking endpoint."""
        doc = self.listings.find_one_and_update(
            id_filter(listing_id),
            {"$inc": {"viewCount": 1}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise NotFound("Listing not found")
        return doc["viewCount"]

    def increment_view(self, listing: dict, viewer_id: Optional[str]) -> int:
        """Count a listing fetch; anonymous viewers and the owner are not counted."""
        current = listing.get("viewCount") or 0
        if not viewer_id or viewer_id == listing.get("userId"):
            return current
        doc = self.listings.find_one_and_update(
            {"_id": listing["_id"]},
            {"$inc": {"viewCount": 1}},
            return_document=ReturnDocument.AFTER,
        )
        return doc["viewCount"] if doc is not None else current + 1

    def stats(self, listing_id: str) -> dict:
        doc = find_by_id(self.db, "listings", listing_id)
        if doc is None:
            raise NotFound("Listing not found")
        return {"viewCount": doc.get("viewCount") or 0, "saveCount": doc.get("saveCount") or 0}

    def toggle_save(self, user_id: str, listing_id: str) -> bool:
        key = saved_listing_key(user_id, listing_id)
        if self.saved.find_one({"_id": key}, {"_id": 1}) is not None:
            removed = self.saved.delete_one({"_id": key}).deleted_count
            if removed:
                self.listings.update_one(
                    {**id_filter(listing_id), "saveCount": {"$gt": 0}},
                    {"$inc": {"saveCount": -1}},
                )
            logger.info("User %s unsaved listing %s", user_id, listing_id)
            return False

        try:
            create_document(self.db, "savedListings", SavedListing(user_id=user_id, listing_id=listing_id), doc_id=key)
        except DuplicateKeyError:
            # A concurrent toggle saved it first and already counted it
            return True
        self.listings.update_one(id_filter(listing_id), {"$inc": {"saveCount": 1}})
        logger.info("User %s saved listing %s", user_id, listing_id)
        return True

    def list_saved(self, user_id: str) -> List[dict]:
        return [
            {"listingId": doc.get("listingId"), "savedAt": timestamp_view(doc.get("savedAt"))}
            for doc in self.saved.find({"userId": user_id})
        ]

    def record_affiliate_click(self, affiliate_id: str) -> bool:
        """Count a click for an active affiliate; unknown or inactive ones are ignored."""
        doc = self.affiliates.find_one_and_update(
            {**id_filter(affiliate_id), "isActive": True},
            {"$inc": {"clickCount": 1}, "$set": {"updatedAt": utcnow()}},
        )
        if doc is None:
            logger.info("Ignored click for unknown or inactive affiliate %s", affiliate_id)
            return False
        return True

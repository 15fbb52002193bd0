import logging
from typing import Optional

from pymongo.database import Database

from database import find_by_id, id_filter
from errors import Forbidden, InvalidInput, NotFound

logger = logging.getLogger(__name__)


class SchoolAdmins:
    """Admin role list of a school; only current admins may change it."""

    def __init__(self, db: Database):
        self.db = db
        self.schools = db["schools"]

    def _load(self, school_id: str) -> dict:
        school = find_by_id(self.db, "schools", school_id)
        if school is None:
            raise NotFound("School not found")
        return school

    def status(self, school_id: str, user_id: str) -> dict:
        admin_ids = self._load(school_id).get("adminIds") or []
        admins = []
        for admin_id in admin_ids:
            user = find_by_id(self.db, "users", admin_id)
            if user is None:
                continue
            admins.append({
                "uid": admin_id,
                "firstName": user.get("firstName") or "",
                "lastName": user.get("lastName") or "",
                "profilePicture": user.get("profilePicture") or "",
            })
        return {"isAdmin": user_id in admin_ids, "adminIds": admin_ids, "admins": admins}

    def change(self, school_id: str, user_id: str, target_user_id: Optional[str], action: Optional[str]) -> list:
        if not target_user_id or not action:
            raise InvalidInput("Missing required fields: targetUserId, action")
        if action not in ("add", "remove"):
            raise InvalidInput("Invalid action. Must be 'add' or 'remove'")

        school = self._load(school_id)
        admin_ids = school.get("adminIds") or []
        if user_id not in admin_ids:
            raise Forbidden("Only admins can manage school admins")

        if action == "add":
            if target_user_id in admin_ids:
                raise InvalidInput("User is already an admin")
            new_admin_ids = admin_ids + [target_user_id]
        else:
            if target_user_id not in admin_ids:
                raise InvalidInput("User is not an admin")
            if len(admin_ids) <= 1:
                raise InvalidInput("Cannot remove the last admin")
            new_admin_ids = [admin_id for admin_id in admin_ids if admin_id != target_user_id]

        self.schools.update_one(id_filter(school_id), {"$set": {"adminIds": new_admin_ids}})
        logger.info("School %s admins changed by %s: %s %s", school_id, user_id, action, target_user_id)
        return new_admin_ids

"""Directory Repository - Data access for users and roles"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError
from pymongo import ReturnDocument

from .mongo_client import get_collection
from ..domain.models import User, Role
from ..domain.errors import UserNotFoundError, RoleNotFoundError, AlreadyExistsError
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class DirectoryRepository:
    """Repository for the user/role directory"""

    def __init__(self):
        self._users: Collection = get_collection("users")
        self._roles: Collection = get_collection("roles")

    # =========================================================================
    # Users
    # =========================================================================

    def create_user(self, user: User) -> User:
        """Create a directory user"""
        doc = user.model_dump()
        doc["_id"] = user.user_id

        try:
            self._users.insert_one(doc)
        except DuplicateKeyError:
            raise AlreadyExistsError(f"User {user.user_id} already exists")

        logger.info(f"Created user: {user.user_id}")
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        """Get user by ID"""
        doc = self._users.find_one({"user_id": user_id})
        if doc:
            doc.pop("_id", None)
            return User.model_validate(doc)
        return None

    def get_user_or_raise(self, user_id: str) -> User:
        """Get user by ID or raise error"""
        user = self.get_user(user_id)
        if not user:
            raise UserNotFoundError(f"User {user_id} not found")
        return user

    def get_users(self, user_ids: List[str]) -> Dict[str, User]:
        """Fetch many users keyed by ID (missing ids are simply absent)"""
        users: Dict[str, User] = {}
        for doc in self._users.find({"user_id": {"$in": list(user_ids)}}):
            doc.pop("_id", None)
            user = User.model_validate(doc)
            users[user.user_id] = user
        return users

    # =========================================================================
    # Roles
    # =========================================================================

    def create_role(self, role: Role) -> Role:
        """Create a directory role"""
        doc = role.model_dump()
        doc["_id"] = role.role_id

        try:
            self._roles.insert_one(doc)
        except DuplicateKeyError:
            raise AlreadyExistsError(f"Role {role.role_id} already exists")

        logger.info(f"Created role: {role.role_id}")
        return role

    def get_role(self, role_id: str) -> Optional[Role]:
        """Get role by ID"""
        doc = self._roles.find_one({"role_id": role_id})
        if doc:
            doc.pop("_id", None)
            return Role.model_validate(doc)
        return None

    def get_role_or_raise(self, role_id: str) -> Role:
        """Get role by ID or raise error"""
        role = self.get_role(role_id)
        if not role:
            raise RoleNotFoundError(f"Role {role_id} not found")
        return role

    def _update_members(self, role_id: str, update: Dict[str, Any]) -> Role:
        update.setdefault("$set", {})["updated_at"] = utc_now()
        result = self._roles.find_one_and_update(
            {"role_id": role_id},
            update,
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            raise RoleNotFoundError(f"Role {role_id} not found")
        result.pop("_id", None)
        return Role.model_validate(result)

    def add_member(self, role_id: str, user_id: str) -> Role:
        """Append a member (no-op if already present)"""
        role = self._update_members(role_id, {"$addToSet": {"member_ids": user_id}})
        logger.info(f"Added {user_id} to role {role_id}", extra={"actor_id": user_id})
        return role

    def remove_member(self, role_id: str, user_id: str) -> Role:
        """Remove a member"""
        role = self._update_members(role_id, {"$pull": {"member_ids": user_id}})
        logger.info(f"Removed {user_id} from role {role_id}", extra={"actor_id": user_id})
        return role

"""Directory Service - Users and roles consumed by the assignment resolver"""
from typing import List, Optional

from ..domain.models import User, Role
from ..domain.errors import ValidationError
from ..repositories.directory_repo import DirectoryRepository
from ..utils.idgen import generate_user_id, generate_role_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class DirectoryService:
    """
    Service for directory operations

    Identity verification happens upstream; the directory only records who
    exists, whether they are active and which roles they belong to.
    """

    def __init__(self):
        self.repo = DirectoryRepository()

    def create_user(
        self,
        display_name: str,
        email: Optional[str] = None,
        user_id: Optional[str] = None,
        active: bool = True
    ) -> User:
        """Register a user"""
        now = utc_now()
        user = User(
            user_id=user_id or generate_user_id(),
            display_name=display_name,
            email=email,
            active=active,
            created_at=now,
            updated_at=now,
        )
        return self.repo.create_user(user)

    def get_user(self, user_id: str) -> User:
        return self.repo.get_user_or_raise(user_id)

    def create_role(
        self,
        name: str,
        member_ids: Optional[List[str]] = None,
        role_id: Optional[str] = None
    ) -> Role:
        """Create a role; every member must already exist"""
        member_ids = list(dict.fromkeys(member_ids or []))
        known = self.repo.get_users(member_ids)
        missing = [member_id for member_id in member_ids if member_id not in known]
        if missing:
            raise ValidationError(
                f"Unknown users: {', '.join(missing)}",
                details={"user_ids": missing}
            )

        now = utc_now()
        role = Role(
            role_id=role_id or generate_role_id(),
            name=name,
            member_ids=member_ids,
            created_at=now,
            updated_at=now,
        )
        return self.repo.create_role(role)

    def get_role(self, role_id: str) -> Role:
        return self.repo.get_role_or_raise(role_id)

    def add_member(self, role_id: str, user_id: str) -> Role:
        """Append an existing user to a role"""
        self.repo.get_role_or_raise(role_id)
        self.repo.get_user_or_raise(user_id)
        return self.repo.add_member(role_id, user_id)

    def remove_member(self, role_id: str, user_id: str) -> Role:
        """Drop a user from a role"""
        return self.repo.remove_member(role_id, user_id)

"""Assignment Resolver - Turn step operators into concrete users"""
from typing import List, Optional

from ..domain.models import User, UserOperator, RoleOperator, NoOperator
from ..domain.errors import (
    UserNotFoundError, AssignmentValidationError, AmbiguousAssignmentError, NotFoundError
)
from ..repositories.directory_repo import DirectoryRepository
from ..utils.logger import get_logger

logger = get_logger(__name__)


class AssignmentResolver:
    """
    Resolve and bind step operators against the directory

    Rules:
    - None operator binds nobody; the requester acts on the step
    - User operator binds exactly that (active) user
    - Role operator binds the override if it is a member, else the
      requester when a member, else the first member in role order
    """

    def __init__(self, directory_repo: Optional[DirectoryRepository] = None):
        self.repo = directory_repo or DirectoryRepository()

    def resolve(self, operator: UserOperator | RoleOperator | NoOperator) -> List[User]:
        """
        Users who may act for an operator

        Raises:
            UserNotFoundError: User operator missing or inactive
            RoleNotFoundError: Role operator missing
        """
        if isinstance(operator, UserOperator):
            user = self.repo.get_user(operator.user_id)
            if user is None or not user.active:
                raise UserNotFoundError(
                    f"User {operator.user_id} not found or inactive",
                    details={"user_id": operator.user_id}
                )
            return [user]

        if isinstance(operator, RoleOperator):
            role = self.repo.get_role_or_raise(operator.role_id)
            users = self.repo.get_users(role.member_ids)
            # Keep role membership order, skip unknown and inactive members
            return [
                users[member_id] for member_id in role.member_ids
                if member_id in users and users[member_id].active
            ]

        return []

    def bind(
        self,
        operator: UserOperator | RoleOperator | NoOperator,
        override: Optional[str],
        requester_id: str
    ) -> Optional[str]:
        """
        Pick the user a new ticket step is bound to

        Args:
            operator: The schema step operator
            override: User explicitly requested by the ticket creator
            requester_id: The ticket requester

        Returns:
            Bound user ID, or None for operator-less steps
        """
        if isinstance(operator, NoOperator):
            return None

        if isinstance(operator, UserOperator):
            self.resolve(operator)
            if override is not None and override != operator.user_id:
                raise AssignmentValidationError(
                    f"Step is bound to user {operator.user_id}; {override} cannot be assigned",
                    details={"user_id": operator.user_id, "override": override}
                )
            return operator.user_id

        members = [user.user_id for user in self.resolve(operator)]

        if override is not None:
            if override not in members:
                raise AssignmentValidationError(
                    f"User {override} is not an active member of role {operator.role_id}",
                    details={"role_id": operator.role_id, "override": override}
                )
            return override

        if not members:
            raise AmbiguousAssignmentError(
                f"Role {operator.role_id} has no active members and no assignee was given",
                details={"role_id": operator.role_id}
            )

        if requester_id in members:
            return requester_id

        logger.debug(
            f"Role {operator.role_id} bound to first member {members[0]}",
            extra={"actor_id": requester_id}
        )
        return members[0]

    def is_eligible(
        self,
        operator: UserOperator | RoleOperator | NoOperator,
        user_id: str
    ) -> bool:
        """Whether the user could be bound to a step with this operator"""
        if isinstance(operator, NoOperator):
            return True
        try:
            return any(user.user_id == user_id for user in self.resolve(operator))
        except NotFoundError:
            return False

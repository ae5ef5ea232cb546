"""
Branch scope evaluation.

Every write path asks this module whether the acting user may touch a given
branch before anything is mutated. Admins see all branches but never write
through the aggregate scope; every other role is pinned to the branch bound
on their account.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from core.models import User
from .base_service import AuthorizationError, parse_int

logger = logging.getLogger(__name__)

ALL_BRANCHES = "all"

Scope = Union[int, str]


@dataclass(frozen=True)
class Actor:
    id: Optional[int]
    role: str
    branch_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role == User.RoleChoices.ADMIN

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(id=user.id, role=user.role, branch_id=user.branch_id)


class BranchScopeService:
    MANAGER_ROLES = (User.RoleChoices.ADMIN, User.RoleChoices.MANAGER)

    @classmethod
    def scope_for(cls, actor: Actor) -> Scope:
        if actor.is_admin:
            return ALL_BRANCHES
        if actor.branch_id is None:
            raise AuthorizationError("User is not assigned to a branch")
        return actor.branch_id

    @classmethod
    def authorize_branch_write(cls, actor: Actor, branch_id) -> bool:
        try:
            scope = cls.scope_for(actor)
        except AuthorizationError:
            return False
        if scope == ALL_BRANCHES:
            return False
        return branch_id is not None and str(scope) == str(branch_id)

    @classmethod
    def require_branch_write(cls, actor: Actor, branch_id) -> int:
        if cls.authorize_branch_write(actor, branch_id):
            return int(branch_id)

        if actor.is_admin:
            message = "Select a single branch to make changes; the all-branches view is read-only"
        else:
            message = "You can only modify data of your own branch"
        logger.warning(
            "Branch write denied: user=%s role=%s branch=%s", actor.id, actor.role, branch_id
        )
        raise AuthorizationError(message, {"branch_id": branch_id})

    @classmethod
    def resolve_write_branch(cls, actor: Actor, branch_id=None) -> int:
        """Explicit branch if given, otherwise the actor's own one."""
        if branch_id in (None, "", ALL_BRANCHES):
            if actor.is_admin:
                return cls.require_branch_write(actor, ALL_BRANCHES)
            branch_id = actor.branch_id
        else:
            branch_id = parse_int(branch_id, "branch_id")
        return cls.require_branch_write(actor, branch_id)

    @classmethod
    def resolve_read_scope(cls, actor: Actor, requested=None) -> Scope:
        scope = cls.scope_for(actor)

        if requested in (None, "", ALL_BRANCHES):
            return scope

        branch_id = parse_int(requested, "branch_id")
        if scope == ALL_BRANCHES or scope == branch_id:
            return branch_id

        logger.warning(
            "Branch read denied: user=%s role=%s branch=%s", actor.id, actor.role, branch_id
        )
        raise AuthorizationError("You can only view data of your own branch", {"branch_id": branch_id})

    @classmethod
    def require_branch_read(cls, actor: Actor, branch_id) -> None:
        scope = cls.scope_for(actor)
        if scope != ALL_BRANCHES and str(scope) != str(branch_id):
            raise AuthorizationError("You can only view data of your own branch", {"branch_id": branch_id})

    @classmethod
    def require_role(cls, actor: Actor, *roles) -> None:
        allowed = set(roles) | {User.RoleChoices.ADMIN}
        if actor.role not in allowed:
            logger.warning("Role denied: user=%s role=%s needs=%s", actor.id, actor.role, roles)
            raise AuthorizationError(
                "Your role is not allowed to perform this action",
                {"role": actor.role}
            )

    @classmethod
    def require_manager(cls, actor: Actor) -> None:
        cls.require_role(actor, *cls.MANAGER_ROLES)


def filter_by_scope(queryset, scope: Scope, field: str = "branch_id"):
    if scope == ALL_BRANCHES:
        return queryset
    return queryset.filter(**{field: scope})

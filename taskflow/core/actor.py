# taskflow/core/actor.py
from dataclasses import dataclass
from typing import Optional

from taskflow.core.roles import OVERSIGHT_ROLES, Role, TeamType, parse_enum


@dataclass(frozen=True)
class Actor:
    """The user a core operation is performed on behalf of."""

    id: int
    role: Role
    team_type: Optional[TeamType] = None

    @property
    def is_oversight(self) -> bool:
        return self.role in OVERSIGHT_ROLES

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(
            id=user.id,
            role=Role(user.role),
            team_type=parse_enum(TeamType, user.team_type) if user.team_type else None,
        )

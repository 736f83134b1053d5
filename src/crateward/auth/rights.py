"""Ownership rights.

A resource (a crate) is owned by an ordered list of owners. Each owner is
either an individual user or a GitHub team. A user listed directly holds
FULL rights; a member of an owning team may PUBLISH.
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional

from crateward.db.models import User


class Rights(enum.IntEnum):
    """Strongest permission an actor holds over a resource. Ordered."""

    NONE = 0
    PUBLISH = 1
    FULL = 2


class OwnerKind(enum.IntEnum):
    USER = 0
    TEAM = 1


@dataclass(frozen=True)
class Team:
    """A GitHub team that can own resources.

    login is the qualified name, e.g. "github:rust-lang:core".
    """

    id: int
    login: str
    github_id: int
    name: Optional[str] = None


@dataclass(frozen=True)
class Owner:
    """Tagged union of the two owner kinds. Build with user_owner/team_owner."""

    kind: OwnerKind
    user: Optional[User] = None
    team: Optional[Team] = None


def user_owner(user: User) -> Owner:
    return Owner(kind=OwnerKind.USER, user=user)


def team_owner(team: Team) -> Owner:
    return Owner(kind=OwnerKind.TEAM, team=team)


class TeamDirectory(ABC):
    """Answers team membership questions. Implementations may do I/O and raise."""

    @abstractmethod
    async def is_member(self, team: Team, user: User) -> bool:
        ...


async def rights(user: User, owners: Iterable[Owner], teams: TeamDirectory) -> Rights:
    """Given this set of owners, determine the strongest rights the user has.

    Short-circuits on FULL because nothing beats it. Owner lists are
    usually users first, then teams, so the short-circuit tends to hit
    early; the result does not depend on that ordering. Team lookups that
    fail propagate rather than counting as "not a member".
    """
    best = Rights.NONE
    for owner in owners:
        if owner.kind == OwnerKind.USER:
            if owner.user.id == user.id:
                return Rights.FULL
        elif owner.kind == OwnerKind.TEAM:
            if await teams.is_member(owner.team, user):
                best = Rights.PUBLISH
    return best

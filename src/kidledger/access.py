"""Family membership and role checks shared by every component."""

from __future__ import annotations

from .exceptions import UnauthorizedError
from .models import Actor, ActorRole
from .persistence import ChildRecord


def ensure_member(actor: Actor, child: ChildRecord) -> None:
    """Allow parents of the family, the child owning the account and the system."""

    if not actor.belongs_to(child.family_id):
        raise UnauthorizedError(f"{actor.actor_id} does not belong to this account's family.")
    if actor.role is ActorRole.CHILD and actor.account_id != child.id:
        raise UnauthorizedError("Children may only access their own account.")


def ensure_parent(actor: Actor, child: ChildRecord) -> None:
    """Allow parents of the family and the system."""

    if not (actor.is_parent or actor.is_system):
        raise UnauthorizedError("Only a parent can perform this operation.")
    if not actor.belongs_to(child.family_id):
        raise UnauthorizedError(f"{actor.actor_id} does not belong to this account's family.")


def ensure_family(actor: Actor, family_id: str) -> None:
    if not actor.belongs_to(family_id):
        raise UnauthorizedError(f"{actor.actor_id} does not belong to family {family_id}.")


__all__ = ["ensure_family", "ensure_member", "ensure_parent"]

"""Member registration and team lookups over the placement tree"""

import logging
from typing import List
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from matching_income.domain.models import Member
from matching_income.domain.genealogy import collect_downline, find_placement
from matching_income.domain.exceptions import (
    DuplicateMemberError,
    InvalidPlacementError,
    MemberNotFoundError,
)
from matching_income.infrastructure.database.repositories import MemberRepository


def register_member(db: Session, member: Member) -> Member:
    """
    Place a new member in the binary tree.

    A member without parent_id becomes a root. With a parent, the requested
    position spills over to the deepest free slot on that outer edge.
    """
    members = MemberRepository(db)

    if members.get(member.member_id) is not None:
        raise DuplicateMemberError(f"Member {member.member_id} already exists")
    if member.sponsor_id and members.get(member.sponsor_id) is None:
        raise MemberNotFoundError(f"Sponsor {member.sponsor_id} not found")

    if member.parent_id is None:
        if member.position is not None:
            raise InvalidPlacementError("A root member cannot have a position")
    else:
        if members.get(member.parent_id) is None:
            raise MemberNotFoundError(f"Parent {member.parent_id} not found")
        if member.position is None:
            raise InvalidPlacementError("Position (left/right) is required when a parent is given")
        requested_parent = member.parent_id
        member.parent_id = find_placement(member.parent_id, member.position, members.get_child)
        if member.parent_id != requested_parent:
            logging.info(
                "Member spilled over",
                extra={
                    "member_id": member.member_id,
                    "requested_parent": requested_parent,
                    "placed_under": member.parent_id,
                    "position": member.position.value,
                },
            )

    try:
        members.create(member)
        db.commit()
    except IntegrityError:
        # Another registration took the id or the slot after the checks above
        db.rollback()
        if members.get(member.member_id) is not None:
            raise DuplicateMemberError(f"Member {member.member_id} already exists") from None
        raise InvalidPlacementError(f"Placement under {member.parent_id} was taken concurrently; retry") from None
    except Exception:
        db.rollback()
        raise

    return member


def get_member(db: Session, member_id: str) -> Member:
    member = MemberRepository(db).get(member_id)
    if member is None:
        raise MemberNotFoundError(f"Member {member_id} not found")
    return member


def get_downline(db: Session, member_id: str) -> List[Member]:
    """Every member placed under `member_id` (the member's team)"""
    members = MemberRepository(db)
    if members.get(member_id) is None:
        raise MemberNotFoundError(f"Member {member_id} not found")
    return collect_downline(member_id, members.children_of)

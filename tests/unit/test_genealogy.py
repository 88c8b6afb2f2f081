"""Unit tests for the placement tree helpers"""

import pytest
from typing import Dict, List, Optional
from matching_income.domain.genealogy import collect_downline, determine_leg, find_placement
from matching_income.domain.models import LegType, Member
from matching_income.domain.exceptions import InvalidPlacementError, NotInDownlineError


@pytest.fixture
def members() -> Dict[str, Member]:
    """
    ROOT
    ├── A (left)
    │   ├── A1 (left)
    │   └── A2 (right)
    └── B (right)
    """
    nodes = [
        Member("ROOT", "Root"),
        Member("A", "A", parent_id="ROOT", position=LegType.LEFT),
        Member("B", "B", parent_id="ROOT", position=LegType.RIGHT),
        Member("A1", "A1", parent_id="A", position=LegType.LEFT),
        Member("A2", "A2", parent_id="A", position=LegType.RIGHT),
    ]
    return {m.member_id: m for m in nodes}


def _child_lookup(members: Dict[str, Member]):
    def get_child(parent_id: str, position: LegType) -> Optional[Member]:
        for m in members.values():
            if m.parent_id == parent_id and m.position == position:
                return m
        return None

    return get_child


def _children_lookup(members: Dict[str, Member]):
    def children_of(member_id: str) -> List[Member]:
        return [m for m in members.values() if m.parent_id == member_id]

    return children_of


def test_self_purchase_is_personal(members):
    assert determine_leg("ROOT", "ROOT", members.get) == LegType.PERSONAL


def test_leg_comes_from_node_directly_under_seller(members):
    assert determine_leg("A", "ROOT", members.get) == LegType.LEFT
    assert determine_leg("A2", "ROOT", members.get) == LegType.LEFT  # deep in ROOT's left
    assert determine_leg("A2", "A", members.get) == LegType.RIGHT
    assert determine_leg("B", "ROOT", members.get) == LegType.RIGHT


def test_buyer_outside_downline_fails(members):
    with pytest.raises(NotInDownlineError):
        determine_leg("B", "A", members.get)
    with pytest.raises(NotInDownlineError):
        determine_leg("UNKNOWN", "ROOT", members.get)


def test_placement_free_slot_is_used_directly(members):
    assert find_placement("B", LegType.LEFT, _child_lookup(members)) == "B"


def test_placement_spills_over_down_the_outer_edge(members):
    """ROOT's left is taken by A, A's left by A1, so the new member goes under A1"""
    assert find_placement("ROOT", LegType.LEFT, _child_lookup(members)) == "A1"
    assert find_placement("ROOT", LegType.RIGHT, _child_lookup(members)) == "B"


def test_placement_rejects_personal_position(members):
    with pytest.raises(InvalidPlacementError):
        find_placement("ROOT", LegType.PERSONAL, _child_lookup(members))


def test_collect_downline_breadth_first(members):
    downline = collect_downline("ROOT", _children_lookup(members))
    assert [m.member_id for m in downline][:2] == ["A", "B"]
    assert {m.member_id for m in downline} == {"A", "B", "A1", "A2"}
    assert collect_downline("B", _children_lookup(members)) == []

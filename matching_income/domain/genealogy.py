"""Binary placement tree - leg resolution, spill-over placement and downline walks"""

from typing import Callable, Dict, List, Optional
from matching_income.domain.models import LegType, Member
from matching_income.domain.exceptions import InvalidPlacementError, NotInDownlineError

# Guards against corrupted parent links forming a cycle
MAX_TREE_DEPTH = 10_000

ParentLookup = Callable[[str], Optional[Member]]
ChildLookup = Callable[[str, LegType], Optional[Member]]


def determine_leg(buyer_id: str, seller_id: str, get_member: ParentLookup) -> LegType:
    """
    Resolve where a sale lands for the seller.

    - buyer == seller: personal (self-purchase)
    - otherwise walk up from the buyer; the position of the node placed
      directly under the seller is the leg

    Raises:
        NotInDownlineError: buyer is not placed anywhere under the seller
    """
    if buyer_id == seller_id:
        return LegType.PERSONAL

    current = get_member(buyer_id)
    for _ in range(MAX_TREE_DEPTH):
        if current is None or current.parent_id is None:
            break
        if current.parent_id == seller_id:
            return LegType(current.position)
        current = get_member(current.parent_id)

    raise NotInDownlineError(f"Buyer {buyer_id} is not in the downline of {seller_id}")


def find_placement(parent_id: str, position: LegType, get_child: ChildLookup) -> str:
    """
    Find the parent that will actually receive a new member.

    If the requested slot is taken, spill over down the same outer edge
    (left-most for left, right-most for right) to the deepest free slot.
    """
    if position not in (LegType.LEFT, LegType.RIGHT):
        raise InvalidPlacementError(f"Placement position must be left or right, got {position}")

    current_id = parent_id
    for _ in range(MAX_TREE_DEPTH):
        child = get_child(current_id, position)
        if child is None:
            return current_id
        current_id = child.member_id

    raise InvalidPlacementError(f"No free {position.value} slot found under {parent_id}")


def collect_downline(member_id: str, children_of: Callable[[str], List[Member]]) -> List[Member]:
    """All members placed under `member_id`, breadth first"""
    downline: List[Member] = []
    seen: Dict[str, bool] = {member_id: True}
    queue = [member_id]

    while queue:
        current = queue.pop(0)
        for child in children_of(current):
            if child.member_id in seen:
                continue
            seen[child.member_id] = True
            downline.append(child)
            queue.append(child.member_id)

    return downline

"""/v1/members - binary tree registration and team lookups"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from matching_income.api.auth import Principal, ensure_can_view, get_current_principal, require_admin
from matching_income.api.dependencies import get_request_id
from matching_income.api.errors import http_error
from matching_income.api.v1.schemas import (
    DownlineResponse,
    MemberCreateRequest,
    MemberResponse,
    MemberSchema,
)
from matching_income.domain.exceptions import DomainException
from matching_income.domain.models import LegType, Member
from matching_income.infrastructure.database.session import get_db
from matching_income.services import genealogy

router = APIRouter()


@router.post("/members", response_model=MemberResponse, status_code=201)
def create_member(
    request_body: MemberCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    """
    Register a member under a placement parent.

    The requested position spills over to the deepest free slot on that
    outer edge, so the member may land below the requested parent.
    """
    member = Member(
        member_id=request_body.member_id,
        name=request_body.name,
        parent_id=request_body.parent_id,
        position=LegType(request_body.position) if request_body.position else None,
        sponsor_id=request_body.sponsor_id,
    )

    try:
        member = genealogy.register_member(db, member)
    except DomainException as e:
        raise http_error(e)
    except Exception as e:
        logging.error(
            f"Member registration failed: {str(e)}",
            extra={"request_id": get_request_id(request), "member_id": request_body.member_id},
        )
        raise HTTPException(status_code=500, detail="Internal server error")

    return MemberResponse(data=MemberSchema.from_domain(member))


@router.get("/members/{member_id}", response_model=MemberResponse)
def read_member(
    member_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    try:
        ensure_can_view(principal, member_id)
        member = genealogy.get_member(db, member_id)
    except DomainException as e:
        raise http_error(e)

    return MemberResponse(data=MemberSchema.from_domain(member))


@router.get("/members/{member_id}/downline", response_model=DownlineResponse)
def read_downline(
    member_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Every member placed under member_id, level by level"""
    try:
        ensure_can_view(principal, member_id)
        downline = genealogy.get_downline(db, member_id)
    except DomainException as e:
        raise http_error(e)

    return DownlineResponse(
        member_id=member_id,
        total=len(downline),
        data=[MemberSchema.from_domain(m) for m in downline],
    )

"""Mapping of domain exceptions onto HTTP errors with the {success, message} envelope"""

from typing import Dict, Type
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from matching_income.domain.exceptions import (
    AlreadyDecidedError,
    AuthError,
    DomainException,
    DuplicateMemberError,
    DuplicateSaleError,
    IncomeWebhookError,
    InvalidStatusTransitionError,
    MemberNotFoundError,
    RecordNotFoundError,
)

STATUS_BY_ERROR: Dict[Type[DomainException], int] = {
    RecordNotFoundError: 404,
    MemberNotFoundError: 404,
    DuplicateMemberError: 409,
    DuplicateSaleError: 409,
    AlreadyDecidedError: 409,
    InvalidStatusTransitionError: 409,
    IncomeWebhookError: 502,
}


def http_error(exc: DomainException) -> HTTPException:
    """HTTPException carrying the error envelope for a domain failure"""
    if isinstance(exc, AuthError):
        status_code = 403 if exc.forbidden else 401
        headers = None if exc.forbidden else {"WWW-Authenticate": "Bearer"}
    else:
        status_code = STATUS_BY_ERROR.get(type(exc), 422)
        headers = None

    return HTTPException(
        status_code=status_code,
        detail={"success": False, "message": str(exc), "error": type(exc).__name__},
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render every HTTP error as {success: false, message, error}"""
    if isinstance(exc.detail, dict):
        content = exc.detail
    else:
        content = {"success": False, "message": str(exc.detail), "error": "HTTPError"}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))

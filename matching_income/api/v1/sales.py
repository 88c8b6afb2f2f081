"""POST /v1/sales - ledger ingest of qualifying plot sales"""

import time
import uuid
import logging
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from matching_income.api.auth import Principal, require_admin
from matching_income.api.dependencies import get_member_locks, get_income_rules, get_now, get_request_id
from matching_income.api.errors import http_error
from matching_income.api.v1.schemas import (
    IncomeRecordSchema,
    LegBalanceSchema,
    SaleCreateRequest,
    SaleIngestData,
    SaleIngestResponse,
    SaleSchema,
)
from matching_income.domain.exceptions import DomainException
from matching_income.domain.models import IncomeRules, Sale
from matching_income.infrastructure.database.session import get_db
from matching_income.infrastructure.observability.logging import log_sale_ingested
from matching_income.services.ledger_ingest import ingest_sale
from matching_income.services.locks import MemberLocks
from matching_income.utils.date_utils import ensure_utc

router = APIRouter()


@router.post("/sales", response_model=SaleIngestResponse, status_code=201)
def create_sale(
    request_body: SaleCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
    rules: IncomeRules = Depends(get_income_rules),
    locks: MemberLocks = Depends(get_member_locks),
    now: datetime = Depends(get_now),
):
    """
    Ingest a completed plot sale.

    Flow:
    1. Resolve the seller's leg for the buyer from the placement tree
    2. Personal sale: emit a personal_sale income
    3. Leg sale: update the leg balance and run a matching pass
    4. Return the sale, the seller's leg balance and any incomes created
    """
    start_time = time.time()
    request_id = get_request_id(request)

    sale = Sale(
        sale_id=request_body.sale_id or str(uuid.uuid4()),
        buyer_id=request_body.buyer_id,
        seller_id=request_body.seller_id,
        plot_id=request_body.plot_id,
        sale_amount_paise=request_body.sale_amount_paise,
        sale_date=ensure_utc(request_body.sale_date) if request_body.sale_date else now,
    )

    try:
        result = ingest_sale(db, sale, rules, locks, now)
    except DomainException as e:
        raise http_error(e)
    except Exception as e:
        logging.error(
            f"Sale ingest failed: {str(e)}",
            extra={"request_id": request_id, "sale_id": sale.sale_id},
        )
        raise HTTPException(status_code=500, detail="Internal server error")

    duration_ms = (time.time() - start_time) * 1000
    log_sale_ingested(
        request_id=request_id,
        sale_id=result.sale.sale_id,
        seller_id=result.sale.seller_id,
        leg_type=result.sale.leg_type.value,
        amount_paise=result.sale.sale_amount_paise,
        incomes_created=len(result.incomes),
        duration_ms=duration_ms,
    )

    return SaleIngestResponse(
        data=SaleIngestData(
            sale=SaleSchema.from_domain(result.sale),
            leg_balance=LegBalanceSchema.from_domain(result.balance) if result.balance else None,
            incomes=[IncomeRecordSchema.from_domain(i, now) for i in result.incomes],
        )
    )

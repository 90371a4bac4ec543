# routers/tax_routes.py
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query

from routers.dependencies import get_tax_service
from services.tax_reporting_service import TaxReportError, TaxReportingService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{user_id}/report")
def tax_report(
    user_id: int,
    tax_year: int | None = Query(None),
    svc: TaxReportingService = Depends(get_tax_service),
):
    year = tax_year or datetime.now(timezone.utc).year
    try:
        return svc.generate_tax_report(str(user_id), year)
    except TaxReportError as e:
        logger.warning("Tax report rejected: user_id=%s tax_year=%s error=%s", user_id, year, e)
        raise HTTPException(status_code=400, detail=str(e))

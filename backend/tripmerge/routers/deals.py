"""Deal router — analyse an offer set for deals and inspect price history."""

import logging

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from tripmerge.schemas.common import ServiceType
from tripmerge.schemas.deals import DealAnalysis
from tripmerge.schemas.offers import Offer
from tripmerge.services.deal_detector import deal_detector, price_history_store

logger = logging.getLogger(__name__)

router = APIRouter()


class DealAnalysisRequest(BaseModel):
    service_type: ServiceType
    offers: list[Offer]
    route: str | None = None
    user_id: str | None = None


@router.post("/analyze", response_model=DealAnalysis)
async def analyze_deals(req: DealAnalysisRequest):
    """Run every deal rule over the offers, then record their prices into history."""
    mismatched = [o.id for o in req.offers if o.service_type != req.service_type.value]
    if mismatched:
        raise HTTPException(
            status_code=400,
            detail=f"Offers {', '.join(mismatched)} are not {req.service_type.value} offers",
        )
    return deal_detector.analyze(req.offers, req.service_type, route=req.route, user_id=req.user_id)


@router.get("/history")
async def price_history(
    service_type: ServiceType | None = Query(None),
    provider: str | None = Query(None),
    route: str | None = Query(None),
):
    """Read-only view of the rolling price history and its statistics."""
    records = price_history_store.records(service_type)
    if provider:
        records = [r for r in records if r.provider == provider]
    if route:
        records = [r for r in records if r.route == route]
    return {"records": [r.to_dict() for r in records], "total": len(records)}

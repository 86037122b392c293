"""Unified search router — one trip request fanned out to every requested service."""

import logging

from fastapi import APIRouter, HTTPException

from tripmerge.schemas.unified import UnifiedSearchRequest, UnifiedSearchResponse
from tripmerge.services.unified_orchestrator import unified_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/unified", response_model=UnifiedSearchResponse)
async def search_unified(req: UnifiedSearchRequest):
    """Search several services at once and suggest cross-service bundles.

    Individual service failures are reported in meta.errors; the call itself
    only fails on an unexpected internal error.
    """
    try:
        return await unified_orchestrator.search(req)
    except Exception as e:
        logger.error(f"Unified search failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Search failed: {str(e)}")

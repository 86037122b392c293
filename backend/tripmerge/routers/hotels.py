"""Hotel router — search followed by geographic clustering and price bands."""

import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from tripmerge.config import settings
from tripmerge.schemas.common import ClusterAlgorithm
from tripmerge.schemas.query import HotelQuery, SearchOptions
from tripmerge.services.adapters import hotel_search
from tripmerge.services.hotel_clustering import ClusteringOptions, geographic_clusterer

logger = logging.getLogger(__name__)

router = APIRouter()


class ClusteringRequest(BaseModel):
    algorithm: ClusterAlgorithm | None = None
    max_radius_m: float | None = Field(default=None, gt=0)
    min_hotels_per_cluster: int | None = Field(default=None, ge=1)
    max_clusters: int | None = Field(default=None, ge=1)
    budget_threshold: float | None = Field(default=None, ge=0)
    luxury_threshold: float | None = Field(default=None, gt=0)


@router.post("/clusters")
async def cluster_hotels(
    query: HotelQuery,
    options: SearchOptions | None = None,
    clustering: ClusteringRequest | None = None,
):
    """Search hotels, then group the results by location and by nightly price."""
    options = options or SearchOptions(max_results=settings.max_results_limit)
    clustering = clustering or ClusteringRequest()
    try:
        cluster_options = ClusteringOptions.from_settings(**clustering.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    response = await hotel_search.search(query, options)
    try:
        result = geographic_clusterer.cluster(response.offers, cluster_options)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(
        f"Clustered {len(response.offers)} hotels into {len(result.clusters)} "
        f"{cluster_options.algorithm.value} clusters"
    )
    return {
        "search_id": response.meta.search_id,
        "total_hotels": len(response.offers),
        "fallback_used": response.meta.fallback_used,
        **result.to_dict(),
    }

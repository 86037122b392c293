"""Per-service search router — flights, hotels, ground transport, car rentals."""

import asyncio
import logging

from fastapi import APIRouter, HTTPException

from tripmerge.schemas.query import CarRentalQuery, FlightQuery, HotelQuery, SearchOptions, TransportQuery
from tripmerge.schemas.responses import ServiceSearchResponse
from tripmerge.services.adapters import (
    ProviderQueryAdapter,
    car_rental_search,
    flight_search,
    hotel_search,
    transport_search,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def _run(adapter: ProviderQueryAdapter, query, options: SearchOptions | None) -> ServiceSearchResponse:
    try:
        return await asyncio.wait_for(adapter.search(query, options), timeout=adapter.search_timeout)
    except asyncio.TimeoutError:
        logger.error(f"{adapter.service_type.value} search timed out after {adapter.search_timeout:g}s")
        raise HTTPException(status_code=504, detail="Search timed out. Please try again.")
    except Exception as e:
        logger.error(f"{adapter.service_type.value} search failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Search failed: {str(e)}")


@router.post("/flights", response_model=ServiceSearchResponse)
async def search_flights(query: FlightQuery, options: SearchOptions | None = None):
    """Search flight offers across every configured flight provider."""
    return await _run(flight_search, query, options)


@router.post("/hotels", response_model=ServiceSearchResponse)
async def search_hotels(query: HotelQuery, options: SearchOptions | None = None):
    return await _run(hotel_search, query, options)


@router.post("/transport", response_model=ServiceSearchResponse)
async def search_transport(query: TransportQuery, options: SearchOptions | None = None):
    """Search multi-modal ground transport journeys."""
    return await _run(transport_search, query, options)


@router.post("/car-rentals", response_model=ServiceSearchResponse)
async def search_car_rentals(query: CarRentalQuery, options: SearchOptions | None = None):
    return await _run(car_rental_search, query, options)

"""
Indicator API Endpoints

Endpoints for indicator aggregation and the registry listing.
"""

import logging

from fastapi import APIRouter, HTTPException

from signal_engine.schemas.indicators import (
    AggregateRequest,
    AggregationResult,
    RegistryEntry,
)
from signal_engine.services.base import ValidationError
from signal_engine.services.indicators import REGISTRY, get_indicator_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/aggregate", response_model=AggregationResult)
async def aggregate_indicators(request: AggregateRequest):
    """
    Aggregate every registered indicator for one series.

    Returns:
        - snapshot: price, 24h change, volume change and all indicator values
          (None on total failure)
        - diagnostics: reason for every indicator without a value
    """
    service = get_indicator_service()
    try:
        return await service.calculate_for_symbol(request, overrides=request.overrides)
    except ValidationError as e:
        logger.info(f"Rejected aggregation for {request.symbol}: {e.message}")
        raise HTTPException(status_code=422, detail=e.message)


@router.get("/registry", response_model=list[RegistryEntry])
async def list_indicators():
    """List registered indicators with their inputs and default parameters."""
    return [
        RegistryEntry(
            name=definition.name,
            category=definition.category,
            inputs=list(definition.inputs),
            params=dict(definition.params),
            core=definition.core,
        )
        for definition in REGISTRY
    ]

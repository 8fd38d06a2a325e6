# medcross/api/routers/statistics.py

from typing import Annotated

from fastapi import APIRouter, Depends

from medcross.api.dependencies import get_query_engine
from medcross.application.query_engine import QueryEngine
from medcross.domain.schemas.record import MonthlyGrowth, StatisticsResponse

router = APIRouter()


@router.get("", response_model=StatisticsResponse)
async def get_statistics(
    query_engine: Annotated[QueryEngine, Depends(get_query_engine)],
):
    """Aggregate counts over the whole index: per chain, per data type, and monthly growth."""
    stats = await query_engine.get_statistics()
    return StatisticsResponse(
        total_records=stats.total_records,
        per_chain_counts=stats.per_chain_counts,
        per_type_counts=stats.per_type_counts,
        monthly_growth=[MonthlyGrowth(**entry) for entry in stats.monthly_growth],
    )

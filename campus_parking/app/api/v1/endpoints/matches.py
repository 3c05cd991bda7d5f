"""
Match API Endpoints.

Ranked tandem partners and carpool groups for the caller.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from campus_parking.app.db.session import get_db
from campus_parking.app.models.enums import MatchKind
from campus_parking.app.schemas.match import MatchListResponse, MatchResponse
from campus_parking.app.core.dependencies import get_current_user
from campus_parking.app.services.engine import Engine, get_engine

router = APIRouter(prefix="/matches", tags=["Matches"])


@router.get("", response_model=MatchListResponse)
async def list_matches(
    kind: MatchKind = Query(MatchKind.TANDEM, description="TANDEM partners or CARPOOL groups"),
    limit: Optional[int] = Query(None, ge=1, le=50),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    engine: Engine = Depends(get_engine),
):
    """
    Top matches for the caller, best first.

    Ties are broken by earlier profile (or group) creation, then lowest id.
    """
    ranking = await engine.ranker.top_matches(db, current_user["user_id"], kind, limit)
    return MatchListResponse(
        kind=kind,
        matches=[
            MatchResponse(candidate_id=m.candidate_id, score=m.score, breakdown=m.breakdown)
            for m in ranking
        ],
    )

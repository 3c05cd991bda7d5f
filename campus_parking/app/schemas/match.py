"""
Match ranking Pydantic schemas.
"""

from pydantic import BaseModel
from typing import Dict, List

from campus_parking.app.models.enums import MatchKind


class MatchResponse(BaseModel):
    """One ranked candidate: a user (tandem) or a carpool group."""
    candidate_id: int
    score: int
    breakdown: Dict[str, float]


class MatchListResponse(BaseModel):
    kind: MatchKind
    matches: List[MatchResponse]

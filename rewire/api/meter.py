"""
Meter API Endpoints

POST /v1/meter/calculate - recompute and store a user's meter
GET  /v1/meter/state     - last stored snapshot
POST /v1/meter/preview   - compute from a supplied history, nothing stored
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, field_validator

from rewire.features.meter.scoring_engine import LogarithmicProgressFormula, get_formula
from rewire.features.meter.service import MeterService, compute_meter
from rewire.features.meter.store import SqlMeterStore
from rewire.features.meter.streaks import today_in
from rewire.core.config import meter_zone
from rewire.models.meter import CompletionRecord, SkillTier

router = APIRouter(prefix="/v1/meter", tags=["meter"])


class MeterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1)


class PreviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    completions: List[CompletionRecord] = Field(default_factory=list)
    completed_count: Optional[NonNegativeInt] = Field(default=None, alias="completedCount")
    previous_tier: Optional[SkillTier] = Field(default=None, alias="previousTier")
    today: Optional[date] = None
    formula_version: Optional[str] = Field(default=None, alias="formulaVersion")

    @field_validator("previous_tier", mode="before")
    @classmethod
    def _parse_previous_tier(cls, value):
        # Same leniency as tiers read back from storage
        return SkillTier.parse(value)


def get_meter_service() -> MeterService:
    return MeterService(SqlMeterStore())


@router.post("/calculate")
def calculate_meter(
    body: MeterRequest,
    request: Request,
    service: MeterService = Depends(get_meter_service),
) -> dict:
    """
    Recompute the meter for a user and persist it.

    Returns:
        {
            "progress": 55.3,
            "skillLevel": "developing",
            "streak": 10,
            "nextLevelAt": 65,
            "completedProtocols": 10,
            "levelUpMessage": "🎉 Level up! You've reached developing!"
        }
    """
    request.state.user_id = body.user_id
    return service.calculate(body.user_id).to_dict()


@router.get("/state")
def get_meter_state(
    user_id: str = Query(..., min_length=1),
    service: MeterService = Depends(get_meter_service),
) -> dict:
    return {"data": service.get_state(user_id).to_dict()}


@router.post("/preview")
def preview_meter(body: PreviewRequest) -> dict:
    zone = meter_zone()
    formula = get_formula(body.formula_version)
    computation = compute_meter(
        body.completions,
        body.completed_count if body.completed_count is not None else len(body.completions),
        body.previous_tier,
        body.today or today_in(zone),
        formula=formula,
        zone=zone,
    )
    data = computation.to_dict()
    data["formulaVersion"] = computation.formula_version
    if isinstance(formula, LogarithmicProgressFormula):
        data["components"] = formula.components(
            computation.reading.completed_protocols, computation.reading.streak
        ).to_dict()
    return {"data": data}

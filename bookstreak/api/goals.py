from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from bookstreak.core.auth import get_current_user_id
from bookstreak.features.goals import service as goals_service

router = APIRouter(prefix="/v1/goals", tags=["goals"])


class PreferencesRequest(BaseModel):
    daily_page_goal: Optional[int] = Field(None, ge=1)
    freeze_allowance: Optional[int] = Field(None, ge=0, le=31)
    timezone: Optional[str] = Field(None, min_length=1, max_length=64)


@router.get("/preferences")
def get_preferences(user_id: str = Depends(get_current_user_id)):
    return {"data": goals_service.get_preferences(user_id).to_dict()}


@router.put("/preferences")
def put_preferences(payload: PreferencesRequest, user_id: str = Depends(get_current_user_id)):
    prefs = goals_service.set_preferences(
        user_id,
        daily_page_goal=payload.daily_page_goal,
        freeze_allowance=payload.freeze_allowance,
        timezone_name=payload.timezone,
    )
    return {"data": prefs.to_dict()}

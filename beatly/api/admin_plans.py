"""
Plan administration routes.

- GET /api/admin/plans: public plan list (pricing page)
- PUT /api/admin/plans: edit one plan, requires X-Admin-Password
"""
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from beatly.core.admin_auth import require_admin_password
from beatly.features.plans.service import list_plans, update_plan
from beatly.models.plan import Plan, DurationType

router = APIRouter(prefix="/api/admin/plans", tags=["admin-plans"])


class PlanUpdateRequest(BaseModel):
    """Partial plan update; omitted fields stay unchanged."""
    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    price: Optional[int] = Field(default=None, ge=0)
    daily_limit: Optional[int] = Field(default=None, ge=0)
    features: Optional[List[str]] = None
    duration_type: Optional[DurationType] = None
    duration_value: Optional[int] = Field(default=None, gt=0)
    is_popular: Optional[bool] = None


@router.get("", response_model=List[Plan])
def get_plans():
    return list_plans()


@router.put("", response_model=Plan, dependencies=[Depends(require_admin_password)])
def put_plan(request: PlanUpdateRequest):
    changes = request.model_dump(exclude_unset=True, exclude={"id"})
    return update_plan(request.id, changes)

"""
beatly/models/plan.py

Plan model: a subscription tier with a price, a daily song quota and a
billing period.
"""

from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

DurationType = Literal["day", "week", "month", "year"]


class Plan(BaseModel):
    """
    Plan represents a subscription tier.

    Examples:
    - free (default, never expires)
    - plus
    - pro

    A price of 0 means the plan never expires; duration fields are then ignored.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    price: int = Field(ge=0)
    daily_limit: int = Field(ge=0)
    features: List[str] = Field(default_factory=list)
    duration_type: Optional[DurationType] = None
    duration_value: Optional[int] = Field(default=None, gt=0)
    is_popular: bool = False
    created_at: Optional[datetime] = None

    @property
    def is_free(self) -> bool:
        return self.price == 0

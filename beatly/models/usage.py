from typing import Optional
from pydantic import BaseModel, ConfigDict


class UsageDecision(BaseModel):
    """Outcome of a usage gate check. `remaining` is set only when allowed."""
    model_config = ConfigDict(frozen=True)

    allowed: bool
    remaining: Optional[int] = None
    message: Optional[str] = None

    @classmethod
    def deny(cls, message: str) -> "UsageDecision":
        return cls(allowed=False, message=message)

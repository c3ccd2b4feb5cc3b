from datetime import datetime, timezone
from typing import Dict, Optional, Any
from pydantic import Field

from blueprint.models.decision_tree import CamelModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WizardSession(CamelModel):
    """
    One run of the interactive builder. Immutable: every update goes through
    `model_copy(update=...)` and yields a new instance.
    """
    session_id: str
    purpose: Optional[str] = None
    platform: Optional[str] = None
    decisions: Dict[str, str] = Field(default_factory=dict)
    current_step: int = 0
    total_steps: int = 2
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    blueprint: Optional[Dict[str, Any]] = None

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None

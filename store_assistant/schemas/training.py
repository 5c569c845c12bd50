from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class FeedbackRequest(BaseModel):
    wasHelpful: bool
    feedbackText: Optional[str] = None

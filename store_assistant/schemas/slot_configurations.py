from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel


class DraftSaveRequest(BaseModel):
    slots: dict[str, Any]
    revision: Optional[int] = None



"""External API endpoint model."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class ApiEndpoint(BaseModel):
    """An HTTP endpoint that external check questions POST to."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    name: str
    url: str
    description: Optional[str] = None
    active: bool = True

from uuid import UUID

from pydantic import BaseModel, ConfigDict


class CurrentUser(BaseModel):
    """Authenticated principal decoded from the bearer JWT; used by all services."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: UUID

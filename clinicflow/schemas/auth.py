"""Actor identity schemas."""

from pydantic import BaseModel

from clinicflow.schemas.appointments import ActorRole


class Actor(BaseModel):
    """Verified caller identity supplied by the identity provider."""

    id: str
    role: ActorRole
    email: str | None = None

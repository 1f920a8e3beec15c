"""Internal callback schemas."""

from pydantic import BaseModel, Field


class ProvisionPrincipalRequest(BaseModel):
    """Payload sent by the identity provider's user-created trigger."""

    delegate_id: str = Field(min_length=1)
    email: str = Field(min_length=3, max_length=320)
    name: str | None = None

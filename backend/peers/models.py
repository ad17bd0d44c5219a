"""Pydantic models for peers and node identity."""

from pydantic import BaseModel, ConfigDict, Field


class TrustedPeer(BaseModel):
    """A peer whose secret we hold and whose offers may be auto-accepted."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    secret: str
    name: str | None = None
    # absolute expiry in ms since the epoch; None means no expiry
    expires_at: int | None = Field(default=None, alias="expiresAt")

    @property
    def label(self) -> str:
        return self.name or self.id


class NodeIdentity(BaseModel):
    """This node's id and the secret peers present to reach it."""
    model_config = ConfigDict(populate_by_name=True)

    node_id: str = Field(alias="nodeId")
    secret: str
    created_at: str = Field(default="", alias="createdAt")

"""
Conversation turns accepted by the conversation chunker.
"""

from pydantic import Field, field_validator

from nexusrag.models.base import NexusBaseModel


class ConversationTurn(NexusBaseModel):
    role: str = Field(..., min_length=1, description="user, assistant, system...")
    content: str = Field("", description="Turn text")

    @field_validator("role")
    @classmethod
    def _normalize_role(cls, value: str) -> str:
        role = value.strip().lower()
        if not role:
            raise ValueError("Turn role cannot be blank")
        return role

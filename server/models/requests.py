from pydantic import BaseModel, ConfigDict, Field

from shared.models.chat import ChatMessage


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage]
    model: str | None = None
    rag_enabled: bool = Field(default=False, alias="ragEnabled")
    conversation_id: str | None = Field(default=None, alias="conversationId")


class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    limit: int = Field(default=5, gt=0)

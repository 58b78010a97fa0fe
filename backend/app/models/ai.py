# ai companion models: chat completion proxy and conversation summaries

from typing import Any, Optional
from pydantic import BaseModel, Field


class ChatCompletionRequest(BaseModel):
    """raw chat request; message shape and numeric bounds are checked by the proxy"""
    messages: Optional[list[Any]] = None
    model: Optional[Any] = None
    max_output_tokens: Optional[Any] = Field(None, alias="maxOutputTokens")
    max_tokens: Optional[Any] = None
    temperature: Optional[Any] = None

    model_config = {"populate_by_name": True}


class ChatCompletionResponse(BaseModel):
    text: str
    id: Optional[str] = None
    model: str
    usage: Optional[dict[str, Any]] = None


class TranscriptPart(BaseModel):
    role: str = ""
    text: str = ""


class ConversationSummaryCreate(BaseModel):
    therapist_id: Optional[str] = Field(None, alias="therapistId")
    summary: Optional[str] = None
    transcript: Optional[list[Any]] = None

    model_config = {"populate_by_name": True}


class ConversationSummaryResponse(BaseModel):
    id: str

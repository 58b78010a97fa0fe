# ai router: chat completion proxy and conversation summaries for the ai companion
# both endpoints need a signed-in caller; the openai key never leaves the server

import logging

from fastapi import APIRouter, Depends

from app.dependencies import get_config_resolver, get_current_user
from app.errors import ServiceError, Unknown
from app.models.ai import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    ConversationSummaryCreate,
    ConversationSummaryResponse,
)
from app.models.user import AuthContext
from app.services.ai_proxy import generate_chat_completion
from app.services.config_resolver import ConfigResolver
from app.services.db import Database, get_db
from app.services.summary_store import save_conversation_summary

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/chat/completions", response_model=ChatCompletionResponse)
async def chat_completion(
    body: ChatCompletionRequest,
    current_user: AuthContext = Depends(get_current_user),
    resolver: ConfigResolver = Depends(get_config_resolver),
):
    """forward a chat request to the completions api"""
    config = await resolver.openai()
    max_tokens = body.max_output_tokens if body.max_output_tokens is not None else body.max_tokens
    return await generate_chat_completion(
        config,
        body.messages,
        model=body.model,
        max_tokens=max_tokens,
        temperature=body.temperature,
    )


@router.post("/summaries", response_model=ConversationSummaryResponse)
async def save_summary(
    body: ConversationSummaryCreate,
    current_user: AuthContext = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """patient saves a summary of an ai companion conversation"""
    try:
        summary_id = await save_conversation_summary(
            db,
            patient_id=current_user.uid,
            therapist_id=body.therapist_id,
            summary=body.summary,
            transcript=body.transcript,
        )
    except ServiceError:
        raise
    except Exception as e:
        raise Unknown(f"Failed to save summary: {e}") from e
    return ConversationSummaryResponse(id=summary_id)

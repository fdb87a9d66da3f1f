"""AI assist API router — owner-only, rate-limited."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request

from sanctuary.core.config import settings
from sanctuary.core.exceptions import RateLimitExceededError, ValidationError, not_found
from sanctuary.core.rate_limiter import FixedWindowRateLimiter
from sanctuary.core.security import require_owner
from sanctuary.models.user import User
from sanctuary.schemas.schemas import AssistRequest, AssistResponse
from sanctuary.services.assist_service import AssistService, assist_service

logger = logging.getLogger("sanctuary")

router = APIRouter(prefix="/assist", tags=["assist"])


def get_rate_limiter(request: Request) -> FixedWindowRateLimiter:
    """The application's AI-assist limiter."""
    return request.app.state.rate_limiter


def get_assist_service() -> AssistService:
    return assist_service


def rate_limit_key(request: Request, user: Optional[User]) -> str:
    """User id when authenticated, otherwise the client IP."""
    if user is not None and user.id is not None:
        return str(user.id)
    if request.client and request.client.host:
        return request.client.host
    return "anon"


@router.post("/", response_model=AssistResponse)
def ai_assist(
    body: AssistRequest,
    request: Request,
    user: User = Depends(require_owner),
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
    service: AssistService = Depends(get_assist_service),
):
    """Ask the developer assistant a question."""
    if not settings.FEATURE_AI_ASSISTANT:
        raise not_found("AI assistant is disabled")
    if not body.question.strip():
        raise ValidationError("Question is required")

    key = rate_limit_key(request, user)
    if not limiter.allow(key):
        raise RateLimitExceededError(retry_after=limiter.retry_after_seconds(key))

    logger.info(
        "AI assist request by %s (ctx=%d, q=%d)",
        user.id, len(body.context), len(body.question),
    )
    return AssistResponse(answer=service.ask(body.context, body.question))

"""AI assist service — owner-only developer helper over a chat-completion API."""

import logging
from typing import Optional

import httpx

from sanctuary.core.config import settings
from sanctuary.core.exceptions import UpstreamServiceError, ValidationError

logger = logging.getLogger("sanctuary")

MAX_CONTEXT_CHARS = 12_000
MAX_QUESTION_CHARS = 2_000

SYSTEM_PROMPT = """
You are a secure developer assistant helping the sanctuary owner fix code and config issues.
- Do NOT invent or reveal secrets (API keys, tokens).
- When suggesting code, return minimal patches/diffs and explain why.
- Prefer concise answers; if risky, recommend manual steps and rollback plan.
Return a concise answer; include code blocks for patches when needed.
"""


class AssistService:
    """Sends one question (plus optional context) to an OpenAI-compatible endpoint."""

    def __init__(
        self,
        base_url: str = settings.AI_ASSIST_BASE_URL,
        api_key: Optional[str] = settings.AI_ASSIST_API_KEY,
        model: str = settings.AI_ASSIST_MODEL,
        max_tokens: int = settings.AI_ASSIST_MAX_TOKENS,
        timeout: float = settings.AI_ASSIST_TIMEOUT_SECONDS,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout

    def build_messages(self, context: str, question: str) -> list:
        if not question or not question.strip():
            raise ValidationError("question required")
        safe_context = str(context or "")[:MAX_CONTEXT_CHARS]
        safe_question = str(question)[:MAX_QUESTION_CHARS]
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": f"Context:\n{safe_context}\n\nQuestion:\n{safe_question}"},
        ]

    def ask(self, context: str, question: str) -> str:
        """Return the assistant's answer text.

        Raises:
            ValidationError: empty question.
            UpstreamServiceError: provider unreachable, misconfigured, or erroring.
        """
        messages = self.build_messages(context, question)
        if not self.api_key:
            raise UpstreamServiceError("AI assist provider is not configured")

        try:
            resp = httpx.post(
                f"{self.base_url}/chat/completions",
                json={"model": self.model, "messages": messages, "max_tokens": self.max_tokens},
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("AI assist provider error: %s", e)
            raise UpstreamServiceError("AI assist failed") from e

        choices = data.get("choices") or [{}]
        text = (choices[0].get("message") or {}).get("content") or ""
        logger.info("AI assist response length: %d", len(text))
        return text


assist_service = AssistService()

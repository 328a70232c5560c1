"""AI text generation client -- hosted functions that pre-fill message fields.

Two functions are exposed by the hosted platform:
- generate-ai-message: three follow-up message variations (professional,
  warm, direct) for a contact, optionally about a property
- generate-email-template: a subject and body for a named template

Both are called with the session's bearer token. Connect errors and timeouts
are retried (tenacity, 3 attempts); an error response raises TransportError
carrying the server's message.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.crm.core.errors import InputValidationError, TransportError
from src.crm.core.tenant import TenantSession
from src.crm.entities.schemas import ActivityType, TemplateCategory

logger = structlog.get_logger(__name__)

_ai_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((httpx.ConnectError, httpx.TimeoutException)),
    reraise=True,
)


class MessageTone(str, Enum):
    PROFESSIONAL = "professional"
    WARM = "warm"
    DIRECT = "direct"

    @property
    def label(self) -> str:
        return {
            MessageTone.PROFESSIONAL: "👔 Professionnel",
            MessageTone.WARM: "😊 Chaleureux",
            MessageTone.DIRECT: "⚡ Direct",
        }[self]


class MessageVariation(BaseModel):
    tone: MessageTone
    text: str


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class GeneratedMessages(BaseModel):
    variations: list[MessageVariation] = Field(default_factory=list)
    usage: TokenUsage = Field(default_factory=TokenUsage)


class GeneratedTemplate(BaseModel):
    subject: str
    content: str
    usage: TokenUsage = Field(default_factory=TokenUsage)


class AIClient:
    """Client for the hosted text-generation functions.

    Args:
        functions_url: Base URL of the hosted functions (``.../functions/v1``).
        api_key: Public (anon) api key of the project.
        timeout: Request timeout in seconds; generation is slow.
        default_user_name: Signature used when the agent has no name on file.
        transport: Optional httpx transport (tests inject ``httpx.MockTransport``).
    """

    def __init__(
        self,
        functions_url: str,
        api_key: str,
        timeout: float = 30.0,
        default_user_name: str = "Votre Conseiller",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._functions_url = functions_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._default_user_name = default_user_name
        self._transport = transport

    @_ai_retry
    async def _post(
        self, session: TenantSession, function: str, body: dict[str, Any]
    ) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            return await client.post(
                f"{self._functions_url}/{function}",
                json=body,
                headers={
                    "apikey": self._api_key,
                    "Authorization": f"Bearer {session.access_token}",
                    "Content-Type": "application/json",
                },
            )

    async def _invoke(
        self, session: TenantSession, function: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        try:
            response = await self._post(session, function, body)
        except httpx.HTTPError as exc:
            logger.error("ai.transport_failed", function=function, error=str(exc))
            raise TransportError(str(exc) or None) from exc

        if response.is_error:
            try:
                payload = response.json()
            except ValueError:
                payload = None
            message = payload.get("error") if isinstance(payload, dict) else None
            logger.error(
                "ai.generation_failed",
                function=function,
                status_code=response.status_code,
                error=message,
            )
            raise TransportError(message or "Erreur génération IA")
        return response.json()

    async def generate_message(
        self,
        session: TenantSession,
        *,
        contact_id: str,
        activity_type: ActivityType | str,
        property_id: str | None = None,
        additional_context: str | None = None,
        user_name: str | None = None,
    ) -> GeneratedMessages:
        """Three tone variations of a follow-up message for a contact."""
        if not contact_id:
            raise InputValidationError(
                "Sélectionnez d'abord un contact",
                field_errors={"contact_id": "Sélectionnez d'abord un contact"},
            )
        body = {
            "organization_id": session.require_tenant(),
            "contact_id": contact_id,
            "property_id": property_id or None,
            "activity_type": ActivityType(activity_type).value,
            "additional_context": (additional_context or "").strip() or None,
            "user_name": user_name or self._default_user_name,
        }
        data = await self._invoke(session, "generate-ai-message", body)
        result = GeneratedMessages.model_validate(
            {"variations": data.get("variations") or [], "usage": data.get("usage") or {}}
        )
        logger.info(
            "ai.message_generated",
            tenant_id=session.tenant_id,
            contact_id=contact_id,
            variations=len(result.variations),
            total_tokens=result.usage.total_tokens,
        )
        return result

    async def generate_email_template(
        self,
        session: TenantSession,
        *,
        template_name: str,
        category: TemplateCategory | str = TemplateCategory.CUSTOM,
        context: str | None = None,
    ) -> GeneratedTemplate:
        """Subject and body for a template, from its name and optional draft."""
        if not template_name.strip():
            raise InputValidationError(
                "Donnez d'abord un nom au template",
                field_errors={"template_name": "Donnez d'abord un nom au template"},
            )
        session.require_tenant()
        body = {
            "template_name": template_name,
            "category": TemplateCategory(category).value,
            "context": context or None,
        }
        data = await self._invoke(session, "generate-email-template", body)
        result = GeneratedTemplate.model_validate(
            {
                "subject": data.get("subject", ""),
                "content": data.get("content", ""),
                "usage": data.get("usage") or {},
            }
        )
        logger.info(
            "ai.template_generated",
            tenant_id=session.tenant_id,
            category=body["category"],
            total_tokens=result.usage.total_tokens,
        )
        return result

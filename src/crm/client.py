"""CRM client -- composition root wiring settings, storage, cache and repositories.

Usage:
    async with CRMClient.from_settings() as crm:
        session = await crm.sessions.establish(user_id, access_token)
        deals = await crm.deals.list(session)
        board = await crm.deal_board(session).load()

The backend is the hosted REST endpoint when SUPABASE_URL is set, otherwise a
SQLAlchemy engine on DATABASE_URL whose tables are created on start.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.crm.config import Settings, get_settings
from src.crm.core.logging import configure_logging
from src.crm.core.notifications import NotificationCenter
from src.crm.core.tenant import TenantSession
from src.crm.data.accessor import TenantScopedAccessor
from src.crm.data.backend import TableBackend
from src.crm.data.cache import QueryCache
from src.crm.data.postgrest import PostgrestBackend
from src.crm.data.session import SessionManager
from src.crm.data.sql import SqlBackend
from src.crm.entities.activities import ActivityRepository
from src.crm.entities.contacts import ContactRepository
from src.crm.entities.deals import DealRepository
from src.crm.entities.properties import PropertyRepository
from src.crm.entities.templates import EmailTemplateRepository
from src.crm.integrations.ai import AIClient
from src.crm.integrations.webhooks import WebhookClient
from src.crm.pipeline.definitions import CONTACT_PIPELINE, DEAL_PIPELINE
from src.crm.pipeline.engine import KanbanEngine

logger = structlog.get_logger(__name__)


class CRMClient:
    """Every CRM service sharing one backend, one cache and one notification center."""

    def __init__(
        self,
        settings: Settings,
        backend: TableBackend,
        *,
        webhooks: WebhookClient | None = None,
        ai: AIClient | None = None,
    ) -> None:
        self.settings = settings
        self.backend = backend
        self.notifications = NotificationCenter(max_history=settings.NOTIFICATION_HISTORY)
        self.cache = QueryCache()
        self.accessor = TenantScopedAccessor(backend, self.notifications)
        self.sessions = SessionManager(self.accessor, self.cache)

        repo_args = (self.accessor, self.cache, self.notifications)
        self.contacts = ContactRepository(*repo_args)
        self.properties = PropertyRepository(*repo_args)
        self.deals = DealRepository(*repo_args)
        self.activities = ActivityRepository(*repo_args)
        self.templates = EmailTemplateRepository(*repo_args)

        self.webhooks = webhooks or WebhookClient(
            settings.N8N_WEBHOOK_URL, timeout=settings.WEBHOOK_TIMEOUT
        )
        self.ai = ai or AIClient(
            settings.functions_url,
            settings.SUPABASE_ANON_KEY,
            timeout=settings.AI_TIMEOUT,
            default_user_name=settings.DEFAULT_AGENT_NAME,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, backend: TableBackend | None = None
    ) -> CRMClient:
        settings = settings or get_settings()
        if backend is None:
            if settings.SUPABASE_URL:
                backend = PostgrestBackend(
                    settings.rest_url,
                    settings.SUPABASE_ANON_KEY,
                    timeout=settings.BACKEND_TIMEOUT,
                    max_retries=settings.BACKEND_MAX_RETRIES,
                )
            else:
                backend = SqlBackend.from_url(settings.DATABASE_URL)
        return cls(settings, backend)

    # ── Lifecycle ───────────────────────────────────────────────────────────

    async def start(self) -> None:
        configure_logging()
        logger.info(
            "crm.starting",
            environment=self.settings.ENVIRONMENT.value,
            backend=type(self.backend).__name__,
            webhooks_enabled=self.webhooks.enabled,
        )
        if isinstance(self.backend, SqlBackend):
            await self.backend.create_all()
            logger.info("crm.schema_ready")

    async def close(self) -> None:
        self.sessions.sign_out()
        if isinstance(self.backend, SqlBackend):
            await self.backend.close()
        logger.info("crm.stopped")

    async def __aenter__(self) -> CRMClient:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ── Boards ──────────────────────────────────────────────────────────────

    def deal_board(
        self, session: TenantSession, filters: dict[str, Any] | None = None
    ) -> KanbanEngine:
        return KanbanEngine(
            DEAL_PIPELINE,
            self.deals,
            self.cache,
            self.notifications,
            session,
            filters=filters,
            webhooks=self.webhooks,
        )

    def contact_board(
        self, session: TenantSession, filters: dict[str, Any] | None = None
    ) -> KanbanEngine:
        return KanbanEngine(
            CONTACT_PIPELINE,
            self.contacts,
            self.cache,
            self.notifications,
            session,
            filters=filters,
            webhooks=self.webhooks,
        )

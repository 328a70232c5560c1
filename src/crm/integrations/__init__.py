"""External integrations -- automation webhooks, AI text generation, template variables.

Exports:
    WebhookClient, WebhookAction, WebhookResult: Automation webhook (never raises).
    AIClient, MessageVariation, GeneratedMessages, GeneratedTemplate: Hosted AI functions.
    TEMPLATE_VARIABLES, extract_variables, render, filter_templates: Email template helpers.
"""

from src.crm.integrations.ai import (
    AIClient,
    GeneratedMessages,
    GeneratedTemplate,
    MessageTone,
    MessageVariation,
)
from src.crm.integrations.templates import (
    TEMPLATE_VARIABLES,
    extract_variables,
    filter_templates,
    render,
)
from src.crm.integrations.webhooks import WebhookAction, WebhookClient, WebhookResult

__all__ = [
    "AIClient",
    "GeneratedMessages",
    "GeneratedTemplate",
    "MessageTone",
    "MessageVariation",
    "TEMPLATE_VARIABLES",
    "WebhookAction",
    "WebhookClient",
    "WebhookResult",
    "extract_variables",
    "filter_templates",
    "render",
]

"""Error taxonomy shared by the accessor, repositories and the stage engine.

- PermissionDeniedError: tenant / row-level policy rejection
- NotFoundError: a single-row lookup matched nothing
- InputValidationError: form input rejected by its schema (resolved at the form boundary)
- TransportError: network failure or backend unavailability
- TenantMissingError: no tenant resolvable for the current session (fail fast)

classify_backend_error() turns a hosted-backend error response into one of these.
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

# SQLSTATE raised by row-level security policies
INSUFFICIENT_PRIVILEGE = "42501"
# REST dialect code for "single row requested, zero or many returned"
SINGLE_ROW_MISMATCH = "PGRST116"


class CRMError(Exception):
    """Base class for every error surfaced by the CRM core."""

    default_message = "Erreur inattendue"

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        self.message = message or self.default_message
        self.code = code
        super().__init__(self.message)


class PermissionDeniedError(CRMError):
    """Row-level policy rejected the operation for the current tenant."""

    default_message = "Accès refusé"


class NotFoundError(CRMError):
    """The requested row does not exist (or is not visible to this tenant)."""

    default_message = "Élément introuvable"


class TransportError(CRMError):
    """Network failure or backend unavailability."""

    default_message = "Service indisponible"


class TenantMissingError(CRMError):
    """No organization could be resolved for the current session."""

    default_message = "Organisation non trouvée"


class InputValidationError(CRMError):
    """Form input failed schema validation.

    Attributes:
        field_errors: Mapping of field name to the first error message for it.
    """

    default_message = "Données invalides"

    def __init__(
        self,
        message: str | None = None,
        *,
        field_errors: dict[str, str] | None = None,
    ) -> None:
        self.field_errors = field_errors or {}
        super().__init__(message)

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> InputValidationError:
        field_errors: dict[str, str] = {}
        for err in exc.errors():
            field = ".".join(str(part) for part in err.get("loc", ())) or "__root__"
            field_errors.setdefault(field, err.get("msg", "invalide"))
        return cls(field_errors=field_errors)


def classify_backend_error(status_code: int, payload: Any) -> CRMError:
    """Map a hosted-backend error response to the CRM error taxonomy.

    Args:
        status_code: HTTP status of the response.
        payload: Decoded JSON body (dict with code/message/details) or raw text.

    Returns:
        The matching CRMError subclass instance (not raised).
    """
    code: str | None = None
    message = ""
    if isinstance(payload, dict):
        code = payload.get("code")
        message = str(payload.get("message") or payload.get("error") or "")
    elif payload:
        message = str(payload)

    lowered = message.lower()
    if (
        status_code in (401, 403)
        or code == INSUFFICIENT_PRIVILEGE
        or "permission" in lowered
        or "policy" in lowered
    ):
        return PermissionDeniedError(message or None, code=code)
    if code == SINGLE_ROW_MISMATCH or status_code in (404, 406):
        return NotFoundError(message or None, code=code)
    if status_code >= 500:
        return TransportError(message or None, code=code)
    return CRMError(message or None, code=code)

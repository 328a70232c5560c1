"""Form boundary: raw user input -> validated pydantic payload."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from src.crm.core.errors import InputValidationError

logger = structlog.get_logger(__name__)

FormModel = TypeVar("FormModel", bound=BaseModel)


def parse_form(model: type[FormModel], raw: Mapping[str, Any]) -> FormModel:
    """Validate raw form values against ``model``.

    Validation errors stop here: they are reported per field and never reach
    a repository or the stage engine.

    Raises:
        InputValidationError: With ``field_errors`` keyed by field name.
    """
    try:
        return model.model_validate(dict(raw))
    except ValidationError as exc:
        error = InputValidationError.from_pydantic(exc)
        logger.info(
            "forms.validation_failed",
            form=model.__name__,
            fields=sorted(error.field_errors),
        )
        raise error from exc

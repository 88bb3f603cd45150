"""Entry logging for kopf handlers."""

import logging
from typing import Any

from ..settings import settings

logger = logging.getLogger(__name__)


def _entry_level() -> int:
    level = logging.getLevelName(settings.handler_entry_log_level.upper())
    return level if isinstance(level, int) else logging.INFO


def log_handler_entry(
    handler_type: str,
    resource_type: str,
    name: str,
    namespace: str,
    extra: dict[str, Any] | None = None,
) -> None:
    """
    Note that a handler was invoked, at HANDLER_ENTRY_LOG_LEVEL.

    Args:
        handler_type: Which handler fired (create/resume, update, delete)
        resource_type: Resource kind in lower case
        name: Resource name
        namespace: Resource namespace
        extra: More fields for the structured record
    """
    fields = {
        "handler_type": handler_type,
        "handler_phase": "invoked",
        "resource_type": resource_type,
        "resource_name": name,
        "namespace": namespace,
        **(extra or {}),
    }
    logger.log(
        _entry_level(),
        f"{handler_type} handler for {resource_type} {namespace}/{name}",
        extra=fields,
    )

import logging
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def log_status_change(entity: str, entity_id: str, old: Any, new: Any, **context: Any) -> None:
    """Log a lifecycle transition of a stored record."""
    old, new = _plain(old), _plain(new)
    if old == new:
        return
    logger.info(
        "%s id=%s status changed from %s to %s",
        entity,
        entity_id,
        old,
        new,
        extra={"entity": entity, "entity_id": entity_id, "old_status": old, "new_status": new, **context},
    )

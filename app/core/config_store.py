"""ADLENS: Engine Config Store.

Loads per-client engine configuration (defaults merged with stored
overrides) through a bounded TTL cache. Saving an override invalidates the
client's cache entry.
"""

import json
from datetime import datetime, timezone

from pydantic import ValidationError
from sqlmodel import Session

from app.config import settings
from app.core.cache import TTLCache
from app.core.logging import get_logger
from app.exceptions import EngineConfigError
from app.models.engine_config import (
    EngineConfig,
    EngineConfigRecord,
    merge_engine_config,
)

logger = get_logger("core.config_store")

config_cache = TTLCache(
    ttl_seconds=settings.engine_config_cache_ttl_seconds,
    max_entries=settings.engine_config_cache_max_entries,
)


def load_overrides(session: Session, client_id: str) -> dict:
    record = session.get(EngineConfigRecord, client_id)
    if record is None:
        return {}
    return json.loads(record.overrides_json or "{}")


def get_engine_config(
    session: Session, client_id: str, cache: TTLCache | None = None
) -> EngineConfig:
    """Merged engine config for a client; cached for the configured TTL.

    A stored override that no longer validates is logged and ignored so
    classification keeps running on defaults.
    """
    if cache is None:
        cache = config_cache
    cached = cache.get(client_id)
    if cached is not None:
        return cached

    overrides = load_overrides(session, client_id)
    try:
        config = merge_engine_config(client_id, overrides)
    except ValidationError as e:
        logger.error(
            f"Stored engine config for {client_id} is invalid, using defaults: "
            f"{e.errors()[0] if e.errors() else e}",
            extra={"client_id": client_id},
        )
        config = EngineConfig(client_id=client_id)

    cache.set(client_id, config)
    return config


def save_engine_config(
    session: Session, client_id: str, overrides: dict, cache: TTLCache | None = None
) -> EngineConfig:
    """Merge ``overrides`` into the stored ones, validate and persist.

    Raises EngineConfigError if the merged result does not validate.
    """
    if cache is None:
        cache = config_cache
    stored = load_overrides(session, client_id)
    for key, patch in overrides.items():
        if isinstance(patch, dict) and isinstance(stored.get(key), dict):
            stored[key] = {**stored[key], **patch}
        else:
            stored[key] = patch

    try:
        config = merge_engine_config(client_id, stored)
    except ValidationError as e:
        raise EngineConfigError(
            client_id,
            [
                {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
                for err in e.errors()
            ],
        ) from e

    record = session.get(EngineConfigRecord, client_id)
    if record is None:
        record = EngineConfigRecord(client_id=client_id)
    record.overrides_json = json.dumps(stored)
    record.updated_at = datetime.now(timezone.utc)
    session.add(record)
    session.commit()

    cache.invalidate(client_id)
    logger.info(
        f"Engine config saved for {client_id}: groups={sorted(overrides)}",
        extra={"client_id": client_id},
    )
    return config

"""Entity verification after approval.

The backend creates projects, sprints and tasks and writes them to the shared
database; these helpers poll until each one is visible locally. Not finding
an entity is reported, never raised.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from pydantic import BaseModel, Field

from planchat.config import settings
from planchat.repositories import EntityRepository, EntityType

logger = logging.getLogger(__name__)

Lookup = Callable[[EntityType, str], Awaitable[str | None]]


class VerificationResult(BaseModel):
    """Outcome of polling for one entity."""

    exists: bool
    attempts: int
    entity_type: str
    entity_id: str
    error: str | None = None


class VerificationSummary(BaseModel):
    """Outcome of polling for a batch of entities."""

    verified: bool
    total: int
    successful: int
    failures: list[VerificationResult] = Field(default_factory=list)


async def verify_entity(
    entity_type: EntityType,
    entity_id: str,
    *,
    initial_delay: float | None = None,
    interval: float | None = None,
    max_attempts: int | None = None,
    lookup: Lookup | None = None,
) -> VerificationResult:
    """Poll the persistence layer until an entity exists or attempts run out.

    ``entity_id`` may be the local id or the backend's source id.
    """
    initial_delay = settings.verification_initial_delay if initial_delay is None else initial_delay
    interval = settings.verification_interval if interval is None else interval
    max_attempts = settings.verification_max_attempts if max_attempts is None else max_attempts
    lookup = lookup or EntityRepository.find_id

    if initial_delay > 0:
        await asyncio.sleep(initial_delay)

    last_error: str | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            found = await lookup(entity_type, entity_id)
        except Exception as e:
            last_error = str(e)
            logger.warning(f"Verification lookup failed for {entity_type}/{entity_id}: {e}")
            found = None

        if found:
            logger.debug(f"Verified {entity_type}/{entity_id} after {attempt} attempt(s)")
            return VerificationResult(
                exists=True,
                attempts=attempt,
                entity_type=entity_type,
                entity_id=entity_id,
            )

        if attempt < max_attempts:
            await asyncio.sleep(interval)

    logger.warning(f"Could not verify {entity_type}/{entity_id} after {max_attempts} attempts")
    return VerificationResult(
        exists=False,
        attempts=max_attempts,
        entity_type=entity_type,
        entity_id=entity_id,
        error=last_error or "Entity not found",
    )


async def verify_entities(
    entities: list[tuple[EntityType, str]],
    **options,
) -> VerificationSummary:
    """Verify several entities concurrently and summarise."""
    results = await asyncio.gather(
        *(verify_entity(entity_type, entity_id, **options) for entity_type, entity_id in entities)
    )
    failures = [r for r in results if not r.exists]

    return VerificationSummary(
        verified=not failures,
        total=len(entities),
        successful=len(entities) - len(failures),
        failures=failures,
    )

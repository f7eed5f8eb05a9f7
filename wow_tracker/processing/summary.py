"""
Narrative summary generation seam.

The pipeline calls ``generate(character_id)`` once per deep run and stores
whatever text comes back. Generating the text (a prompt against the stored
profile and a parse of the reply) lives outside this package; until one is
wired in, ``DisabledSummaryGenerator`` keeps the step a logged no-op.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class SummaryGenerator(Protocol):
    """Produces a short narrative for a character from its stored aggregates."""

    name: str

    async def generate(self, character_id: int) -> Optional[str]:
        """Return summary text, or ``None`` to leave any stored summary untouched."""
        ...


class DisabledSummaryGenerator:
    name = "disabled"

    async def generate(self, character_id: int) -> Optional[str]:
        logger.info("Summary generation disabled; skipping character %d.", character_id)
        return None

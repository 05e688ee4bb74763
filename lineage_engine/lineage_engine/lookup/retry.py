"""Retry policy for metadata lookup calls.

Retries belong to the lookup collaborator, never to the lineage core.
A lookup either answers, answers "not found" (``None``), or raises; only
the raising case is retried, and only for infrastructure errors.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from lineage_engine.config import Settings
from lineage_engine.errors import MetadataLookupError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_LOOKUP_ERRORS: tuple[type[Exception], ...] = (MetadataLookupError, OSError, TimeoutError)


class RetryConfig(BaseModel):
    """How often and how patiently a failing lookup is re-issued."""

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=2, ge=0, description="Retries after the first attempt.")
    backoff: float = Field(default=1.0, ge=0.0, description="Seconds to wait before a retry.")
    max_backoff: float = Field(default=30.0, gt=0.0, description="Ceiling for exponential backoff.")
    exponential: bool = Field(default=False, description="Double the wait after every failed retry.")
    jitter: bool = Field(default=False, description="Spread each wait over [0.5x, 1.5x].")

    @model_validator(mode="after")
    def _backoff_within_ceiling(self) -> RetryConfig:
        if self.backoff > self.max_backoff:
            raise ValueError(f"backoff ({self.backoff}s) exceeds max_backoff ({self.max_backoff}s)")
        return self

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryConfig:
        return cls(
            max_retries=settings.lookup_max_retries,
            backoff=settings.lookup_backoff_seconds,
            max_backoff=max(settings.lookup_backoff_seconds, 30.0),
            jitter=settings.lookup_jitter,
        )

    @property
    def attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, retry: int) -> float:
        """Seconds to sleep before retry number *retry* (1-based)."""
        wait = self.backoff * 2 ** (retry - 1) if self.exponential else self.backoff
        wait = min(wait, self.max_backoff)
        if self.jitter:
            wait *= random.uniform(0.5, 1.5)  # noqa: S311
        return wait


async def retry_lookup(
    operation: str,
    call: Callable[[], Awaitable[T]],
    config: RetryConfig,
    retryable: tuple[type[Exception], ...] = RETRYABLE_LOOKUP_ERRORS,
) -> T:
    """Await *call*, re-issuing it while it fails with a *retryable* error.

    *operation* labels the call in log records, e.g.
    ``"resolve_table ds1.orders"``.  Errors outside *retryable* propagate
    on the first occurrence; a retryable error still failing after
    ``config.attempts`` calls is re-raised unchanged.
    """
    retry = 0
    while True:
        try:
            return await call()
        except retryable as exc:
            if retry >= config.max_retries:
                if config.max_retries:
                    logger.warning("%s failed after %d attempts: %s", operation, config.attempts, exc)
                raise
            retry += 1
            wait = config.delay_for(retry)
            logger.info("%s failed (%s); retry %d/%d in %.2fs", operation, exc, retry, config.max_retries, wait)
            await asyncio.sleep(wait)

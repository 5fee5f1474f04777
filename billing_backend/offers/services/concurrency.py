# offers/services/concurrency.py

"""
======================================================
PATH: offers/services/concurrency.py
======================================================
OPTIMISTIC WRITES FOR THE SETTINGS DOCUMENT

The settings row is shared by every completed bill (usage counters),
managers (rule edits) and the random campaign draw. Writes are
compare-and-swap on CustomerRewardSettings.version:

    attempt:
      read row (settings + version)
      new_settings = mutator(settings)
      UPDATE ... SET ..., version = version + 1 WHERE pk = 1 AND version = <read>
      0 rows -> WriteConflictError

Always call update_settings_document() through with_write_conflict_retry()
so every attempt re-reads and re-merges.
======================================================
"""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from django.conf import settings as django_settings
from django.db import OperationalError, transaction
from django.utils import timezone

from offers.models import SINGLETON_PK, CustomerRewardSettings
from offers.services.exceptions import WriteConflictError
from offers.services.settings_repository import (
    RewardSettings,
    normalize_reward_settings,
    row_to_raw,
    settings_to_document,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CONFLICT_MARKERS = (
    "write conflict",
    "could not serialize",
    "serialization failure",
    "deadlock",
    "database is locked",
    "database table is locked",
)


# ============================================================
# CONFLICT DETECTION + RETRY
# ============================================================


def is_write_conflict(exc: BaseException) -> bool:
    if isinstance(exc, WriteConflictError):
        return True

    if isinstance(exc, OperationalError):
        message = str(exc).lower()
        return any(marker in message for marker in _CONFLICT_MARKERS)

    return False


def with_write_conflict_retry(
    task: Callable[[], T],
    *,
    attempts: int | None = None,
    initial_delay_ms: int | None = None,
) -> T:
    """
    Run `task`, retrying only write conflicts.

    Sleeps initial_delay_ms * attempt between tries (linear backoff).
    Non-conflict errors propagate immediately; the last conflict propagates
    once attempts are exhausted.
    """
    if attempts is None:
        attempts = getattr(django_settings, "REWARD_SETTINGS_WRITE_RETRY_ATTEMPTS", 3)
    if initial_delay_ms is None:
        initial_delay_ms = getattr(django_settings, "REWARD_SETTINGS_WRITE_RETRY_DELAY_MS", 100)

    attempts = max(1, int(attempts))

    for attempt in range(1, attempts + 1):
        try:
            return task()
        except (WriteConflictError, OperationalError) as exc:
            if not is_write_conflict(exc) or attempt >= attempts:
                raise

            delay_ms = initial_delay_ms * attempt
            logger.warning(
                "Settings write conflict; retrying",
                extra={"attempt": attempt, "attempts": attempts, "delay_ms": delay_ms},
            )
            time.sleep(delay_ms / 1000)

    raise WriteConflictError("Write conflict retry exhausted")


# ============================================================
# COMPARE-AND-SWAP
# ============================================================


def _current_row() -> CustomerRewardSettings:
    row = CustomerRewardSettings.objects.filter(pk=SINGLETON_PK).first()
    if row is None:
        row, _ = CustomerRewardSettings.objects.get_or_create(pk=SINGLETON_PK)
    return row


def update_settings_document(
    mutator: Callable[[RewardSettings], RewardSettings],
) -> RewardSettings:
    """
    One compare-and-swap attempt. Returns the settings as written.

    Raises WriteConflictError when another writer bumped the version
    between our read and our write.

    Each attempt runs in its own savepoint, so a database-level conflict
    (deadlock, serialization failure, locked table) rolls back only this
    attempt and the caller's transaction stays usable for the retry.
    """
    with transaction.atomic():
        row = _current_row()
        read_version = row.version

        updated_settings = mutator(normalize_reward_settings(row_to_raw(row)))

        written = CustomerRewardSettings.objects.filter(
            pk=SINGLETON_PK,
            version=read_version,
        ).update(
            **settings_to_document(updated_settings),
            version=read_version + 1,
            updated_at=timezone.now(),
        )

    if written == 0:
        raise WriteConflictError(
            f"Customer reward settings changed concurrently (read version {read_version})"
        )

    return updated_settings


def update_settings_with_retry(
    mutator: Callable[[RewardSettings], RewardSettings],
) -> RewardSettings:
    return with_write_conflict_retry(lambda: update_settings_document(mutator))

"""Active confirmation channels per order (or per seller).

Stored in the Django cache so the web process that opened a channel and
the worker that resolves it see the same registry. Writes to one
subject's entry are serialized by a short ``cache.add`` lock.
"""

from __future__ import annotations

import json
import time
from contextlib import contextmanager
from typing import Iterator, List, Optional
from uuid import UUID

import structlog
from django.conf import settings
from django.core.cache import BaseCache, cache

from modules.payments.dtos import ChannelHandle

logger = structlog.get_logger(__name__)

KEY_PREFIX = "fulfillment:channels"
LOCK_TTL_S = 5
LOCK_WAIT_S = 0.05
LOCK_ATTEMPTS = 20


class ChannelRegistry:
    def __init__(self, backend: Optional[BaseCache] = None, ttl_s: Optional[int] = None) -> None:
        self._cache = backend or cache
        self._ttl = ttl_s or settings.FULFILLMENT["CHANNEL_REGISTRY_TTL_S"]

    def add(self, subject_id: UUID | str, handles: List[ChannelHandle]) -> List[ChannelHandle]:
        """Register *handles*; a handle replaces the one of the same kind and deposit."""
        with self._locked(subject_id):
            current = {(h.kind, h.deposit_id): h for h in self.get(subject_id)}
            for handle in handles:
                current[(handle.kind, handle.deposit_id)] = handle
            merged = list(current.values())
            self._cache.set(self._key(subject_id), self._dump(merged), self._ttl)
        return merged

    def get(self, subject_id: UUID | str) -> List[ChannelHandle]:
        raw = self._cache.get(self._key(subject_id))
        if not raw:
            return []
        return [ChannelHandle.model_validate(item) for item in json.loads(raw)]

    def pop(self, subject_id: UUID | str) -> List[ChannelHandle]:
        with self._locked(subject_id):
            handles = self.get(subject_id)
            self._cache.delete(self._key(subject_id))
        return handles

    def discard(self, subject_id: UUID | str, deposit_id: str) -> List[ChannelHandle]:
        """Drop the handles of one deposit; returns the dropped ones."""
        with self._locked(subject_id):
            handles = self.get(subject_id)
            dropped = [h for h in handles if h.deposit_id == deposit_id]
            kept = [h for h in handles if h.deposit_id != deposit_id]
            if kept:
                self._cache.set(self._key(subject_id), self._dump(kept), self._ttl)
            else:
                self._cache.delete(self._key(subject_id))
        return dropped

    @contextmanager
    def _locked(self, subject_id: UUID | str) -> Iterator[None]:
        lock_key = f"{self._key(subject_id)}:lock"
        for _ in range(LOCK_ATTEMPTS):
            if self._cache.add(lock_key, "1", LOCK_TTL_S):
                break
            time.sleep(LOCK_WAIT_S)
        else:
            # The holder died or is slow; its lock expires with LOCK_TTL_S.
            logger.warning("fulfillment.registry_lock_timeout", subject_id=str(subject_id))
            self._cache.set(lock_key, "1", LOCK_TTL_S)
        try:
            yield
        finally:
            self._cache.delete(lock_key)

    @staticmethod
    def _key(subject_id: UUID | str) -> str:
        return f"{KEY_PREFIX}:{subject_id}"

    @staticmethod
    def _dump(handles: List[ChannelHandle]) -> str:
        return json.dumps([h.model_dump(mode="json") for h in handles])

"""Per-session cache of synthesised speech for option texts.

Children tap the same card many times. The cache keys on lower-cased,
whitespace-collapsed text and stores the pending task, so concurrent
requests for one text share a single synthesis call. Failed or empty
results are evicted and retried on the next request. At most
`max_entries` texts are kept; the least recently used one goes first.
"""

import asyncio
import logging
from collections import OrderedDict

from story_quiz.lexical import collapse_whitespace
from story_quiz.services import SpeechSynthesizer

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 256


def cache_key(text: str) -> str:
    return collapse_whitespace(text).lower()


class SpeechCache:
    def __init__(self, synthesize: SpeechSynthesizer, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        self._synthesize = synthesize
        self._max_entries = max(1, max_entries)
        self._pending: OrderedDict[str, asyncio.Task] = OrderedDict()

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, text: str) -> bool:
        return cache_key(text) in self._pending

    async def get(self, text: str) -> bytes | None:
        key = cache_key(text)
        if not key:
            return None
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._synthesize(collapse_whitespace(text)))
            self._pending[key] = task
            self._evict()
        else:
            self._pending.move_to_end(key)
        try:
            audio = await task
        except Exception as e:
            logger.warning("Speech synthesis failed for %r: %s", text, e)
            self._drop(key, task)
            return None
        if not audio:
            self._drop(key, task)
        return audio

    def _evict(self) -> None:
        # Evicted tasks keep running for whoever already awaits them.
        while len(self._pending) > self._max_entries:
            key, _ = self._pending.popitem(last=False)
            logger.debug("Speech cache full, evicted %r", key)

    def _drop(self, key: str, task: asyncio.Task) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]

    def clear(self) -> None:
        self._pending.clear()

"""Lazily initialized shared handles."""
import asyncio
import logging

logger = logging.getLogger(__name__)


class SingleFlight:
    """Build a value once; concurrent first callers await the same pending init.

    A failed initialization is forgotten so the next caller tries again. An
    init that was pending when reset() ran is not kept.
    """

    def __init__(self, factory, name: str = "resource"):
        self._factory = factory
        self._name = name
        self._value = None
        self._ready = False
        self._pending: asyncio.Future | None = None
        self._generation = 0

    @property
    def ready(self) -> bool:
        return self._ready

    async def get(self):
        if self._ready:
            return self._value
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._init(self._generation))
        pending = self._pending
        return await asyncio.shield(pending)

    async def _init(self, generation: int):
        try:
            value = await self._factory()
        except BaseException:
            logger.warning("initialization of %s failed", self._name)
            if generation == self._generation:
                self._pending = None
            raise
        if generation != self._generation:
            logger.debug("%s was reset while initializing; discarding the result", self._name)
            return value
        self._value = value
        self._ready = True
        self._pending = None
        logger.debug("%s initialized", self._name)
        return value

    def reset(self):
        """Drop the current value; the next get() builds a fresh one."""
        self._generation += 1
        self._value = None
        self._ready = False
        self._pending = None

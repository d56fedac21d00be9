"""
Cache Strategy State

Process-wide switch between manual and declarative cache population.
"""

import structlog

from ...domain.cache.value_objects import CacheStrategy

logger = structlog.get_logger()


class CacheStrategyState:
    """
    Holds the active cache strategy.

    The flag is a plain attribute read on every cache-eligible call. There is
    no lock: a request already in flight when the flag flips may finish under
    the previous strategy.
    """

    def __init__(self, use_auto: bool = False):
        self.use_auto = use_auto
        self.configured = self.strategy

    @property
    def strategy(self) -> CacheStrategy:
        return CacheStrategy.AUTO if self.use_auto else CacheStrategy.MANUAL

    def set(self, use_auto: bool) -> CacheStrategy:
        """Switch strategy and return the one that was active before."""
        previous = self.strategy
        self.use_auto = use_auto
        if previous is not self.strategy:
            logger.info(
                "Cache strategy switched",
                previous=previous.value,
                current=self.strategy.value,
            )
        return previous

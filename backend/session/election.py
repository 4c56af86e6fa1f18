"""
Election controller.

A debounced one-shot timer: every foreign membership change pushes the
decision back by the quorum wait. When the timer finally fires, the first
peer in registry order wins. Only the winner acts; everyone else waits for
its host advertisement.
"""

import asyncio
import logging
from typing import Callable

from discovery.registry import PeerRegistry
from session.models import ElectionAction, ElectionDecision

logger = logging.getLogger(__name__)


def decide(registry: PeerRegistry) -> ElectionDecision:
    """Decide whether this launcher hosts, waits or plays alone."""
    best = registry.best_candidate()
    others = registry.foreign_count()

    if best is None or not best.can_host:
        return ElectionDecision(action=ElectionAction.SOLO, reason="No suitable hosts")

    if best.is_self:
        if others:
            return ElectionDecision(
                action=ElectionAction.HOST,
                reason=f"This is the best host. Hosting for {others} clients",
                player_count=others + 1,
                candidate=best,
            )
        return ElectionDecision(action=ElectionAction.SOLO, reason="No peers found")

    return ElectionDecision(
        action=ElectionAction.WAIT,
        reason=f"Best host is {best.name} ({best.hostname})",
        candidate=best,
    )


class ElectionController:
    """Owns the quorum-wait timer and evaluates the registry when it fires."""

    def __init__(
        self,
        registry: PeerRegistry,
        wait: float,
        on_fire: Callable[[], None],
    ) -> None:
        self._registry = registry
        self._wait = wait
        self._on_fire = on_fire
        self._handle: asyncio.TimerHandle | None = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def rearm(self) -> None:
        """(Re)start the quorum wait, discarding any pending fire."""
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._wait, self._fire)
        logger.debug(f"Election timer armed for {self._wait}s")

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            logger.debug("Election timer cancelled")

    def decide(self) -> ElectionDecision:
        return decide(self._registry)

    def _fire(self) -> None:
        self._handle = None
        self._on_fire()

"""
Change notification between the progress store and its consumers.

Listeners take no payload: they read the current state from the store.
"""
import logging
from typing import Callable, List

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class ChangeNotifier:
    """Synchronous subscribe/notify registry"""

    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener and return a callable that removes it"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self) -> None:
        # Copy: listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.error(f"Progress listener failed: {str(e)}", exc_info=True)

"""
Host lifecycle signals.

The chat view going to the background (terminal hang-up, tab switch, window
hidden) is a hardware-lifecycle event: components owning devices subscribe to
it directly instead of relying on the view to clean up after them.
"""

from typing import Callable, List

from loguru import logger

VisibilityListener = Callable[[bool], None]


class VisibilitySignal:
    """Foreground visibility of the host view, with change listeners."""

    def __init__(self, visible: bool = True):
        self._visible = visible
        self._listeners: List[VisibilityListener] = []

    @property
    def visible(self) -> bool:
        return self._visible

    def subscribe(self, listener: VisibilityListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_visible(self, visible: bool) -> None:
        """Update visibility and notify listeners when it actually changes."""
        if visible == self._visible:
            return
        self._visible = visible
        logger.debug(f"Host view {'visible' if visible else 'hidden'}")
        for listener in list(self._listeners):
            listener(visible)

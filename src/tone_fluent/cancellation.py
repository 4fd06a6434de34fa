import threading
from typing import Optional

from .errors import CancellationError


class CancelToken:
    """Cooperative cancellation flag shared by every call of one generation scope."""

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled"):
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise CancellationError(self.reason or "cancelled")


def check_cancelled(token: Optional[CancelToken]):
    if token is not None:
        token.raise_if_cancelled()

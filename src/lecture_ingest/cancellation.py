"""Cooperative cancellation for running jobs."""

import threading
from typing import List

from .errors import JobCanceled


class CancellationToken:
    """
    Per-job cancellation flag shared between the queue and the worker.

    The worker seals the token once it leaves the cancelable part of the
    pipeline; after that, cancel() is refused. Both operations take the same
    lock, so exactly one of them wins.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._sealed = False
        self._children: List["CancellationToken"] = []

    def cancel(self) -> bool:
        """
        Request cancellation.

        Returns:
            True if the request was accepted, False if the token is sealed
        """
        with self._lock:
            if self._sealed:
                return False
            self._event.set()
            children = list(self._children)
        for child in children:
            child.cancel()
        return True

    def seal(self) -> bool:
        """
        Make the token non-cancelable.

        Returns:
            True if sealed, False if cancellation was already requested
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._sealed = True
            return True

    def child(self) -> "CancellationToken":
        """
        Token that is canceled together with this one but can also be
        canceled on its own (e.g. to stop sibling work after one failure).
        """
        token = CancellationToken()
        with self._lock:
            self._children.append(token)
            canceled = self._event.is_set()
        if canceled:
            token.cancel()
        return token

    @property
    def is_canceled(self) -> bool:
        return self._event.is_set()

    def raise_if_canceled(self) -> None:
        if self._event.is_set():
            raise JobCanceled("Job was canceled")

    def wait(self, timeout: float) -> bool:
        """Sleep up to `timeout` seconds; returns True early if canceled."""
        return self._event.wait(timeout)

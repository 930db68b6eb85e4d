"""Cooperative cancellation shared by the fetch, price and pipeline loops."""

import threading

from walletledger.core.errors import PipelineCancelled


class CancellationToken:
    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: str = ''):
        if self._event.is_set():
            raise PipelineCancelled(f"Cancelled{' during ' + stage if stage else ''}")

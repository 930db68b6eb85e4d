"""Retry wrapper for flaky upstream calls (explorer, price APIs)."""

import time

import requests

from walletledger.utils import constants
from walletledger.utils.logger import get_run_context, logger

RETRYABLE = (requests.ConnectionError, requests.Timeout, TimeoutError, ConnectionError)


class NetworkRetry:
    @staticmethod
    def run(func, retries=constants.API_RETRY_MAX_ATTEMPTS,
            delay=constants.API_RETRY_DELAY_MS / 1000, backoff=2,
            context="Network", retry_on=RETRYABLE):
        """
        Call func(), retrying transport failures with exponential backoff.

        Only exceptions in retry_on are retried; anything else propagates on
        the first attempt. The last failure is re-raised unchanged, except
        timeouts which carry the context label.
        """
        if constants.TEST_MODE or get_run_context() == 'test':
            retries = min(retries, 2)
            delay = 0.01
            backoff = 1.5
        retries = max(1, int(retries))
        for i in range(retries):
            try:
                return func()
            except retry_on as e:
                if i == retries - 1:
                    if isinstance(e, (TimeoutError, requests.Timeout)):
                        raise TimeoutError(f"{context} timeout: {e}") from e
                    raise
                wait = delay * (backoff ** i)
                logger.debug(f"   {context} attempt {i + 1}/{retries} failed ({e}); retrying in {wait:.2f}s")
                time.sleep(wait)

"""
Replays cron invocations against a secondary deployment.

Production runs forward each scheduled job call to the secondary
environment (staging) so both databases see their jobs run on the same
schedule. The forwarded call is submitted to the background dispatcher and
never awaited; its failure only produces a log line.
"""

import logging
from typing import Optional

import httpx

from ..core.config import Settings
from .background import BackgroundDispatcher

logger = logging.getLogger(__name__)


class EnvironmentChainer:
    def __init__(
        self,
        settings: Settings,
        dispatcher: BackgroundDispatcher,
        client: Optional[httpx.Client] = None,
    ):
        self.settings = settings
        self.dispatcher = dispatcher
        self._client = client

    @property
    def enabled(self) -> bool:
        return self.settings.is_production and bool(self.settings.secondary_environment_url)

    def chain(self, path: str) -> bool:
        """Submit the secondary call for ``path``. Returns whether one was scheduled."""
        if not self.enabled:
            return False

        url = f"{self.settings.secondary_environment_url}{path}"
        logger.info(f"[CRON-CHAIN] Triggering {url}")
        future = self.dispatcher.submit(f"chain {path}", self._call, url)
        return future is not None

    def _call(self, url: str) -> int:
        headers = {"Authorization": f"Bearer {self.settings.cron_secret.get_secret_value()}"}
        try:
            if self._client is not None:
                response = self._client.get(url, headers=headers)
            else:
                with httpx.Client(timeout=httpx.Timeout(self.settings.chain_timeout_seconds)) as client:
                    response = client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning(f"[CRON-CHAIN] Failed to reach {url}: {exc}")
            raise

        if response.status_code >= 400:
            logger.warning(f"[CRON-CHAIN] {url} responded {response.status_code}")
        else:
            logger.info(f"[CRON-CHAIN] {url} responded {response.status_code}")
        return response.status_code

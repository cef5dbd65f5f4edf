"""HTTP endpoint verification for staged containers."""

from typing import Iterable, Optional

import requests


class EndpointVerifier:
    """Checks that a staged container answers on its published port."""

    def __init__(self, logger, requests_module=requests, host: str = "localhost", timeout: float = 5.0):
        self.logger = logger
        self.requests = requests_module
        self.host = host
        self.timeout = timeout

    def verify(self, port: int, paths: Iterable[str]) -> Optional[str]:
        """Return None when every path answers with a success status, else the failure."""
        for path in paths:
            url = f"http://{self.host}:{port}{path}"
            try:
                response = self.requests.get(url, timeout=self.timeout)
                response.raise_for_status()
                response.close()
            except self.requests.RequestException as exc:
                self.logger.error("Endpoint verification failed for %s: %s", url, exc)
                return f"{url}: {exc}"
            self.logger.debug("Endpoint %s answered", url)
        return None

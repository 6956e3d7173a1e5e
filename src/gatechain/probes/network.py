"""Network reachability probe."""

from __future__ import annotations

import logging

import httpx

from gatechain.probes.types import ProbeFailedError

logger = logging.getLogger(__name__)

# Some hosts refuse HEAD; retry those with a GET before declaring failure.
_HEAD_REJECTED = {405, 501}


class HttpNetworkProbe:
    def __init__(self, *, timeout: float) -> None:
        self.timeout = timeout

    def head(self, url: str) -> int:
        """Return the final status code for ``url``.

        Raises:
            ProbeFailedError: On timeout, a transport error or a malformed URL
        """
        try:
            response = httpx.head(url, timeout=self.timeout, follow_redirects=True)
            if response.status_code in _HEAD_REJECTED:
                logger.debug("HEAD rejected by %s (%s); retrying with GET", url, response.status_code)
                response = httpx.get(url, timeout=self.timeout, follow_redirects=True)
        except httpx.TimeoutException as e:
            raise ProbeFailedError(f"{url} did not respond within {self.timeout:.0f}s") from e
        except httpx.HTTPError as e:
            raise ProbeFailedError(f"{url} is unreachable: {e}") from e
        except (httpx.InvalidURL, ValueError) as e:
            # malformed ports and IDNA hostnames fail before any request is sent
            raise ProbeFailedError(f"{url} is not a valid URL: {e}") from e
        return response.status_code

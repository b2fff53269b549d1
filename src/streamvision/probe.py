"""Pre-playback network probing."""

import asyncio
import logging
import time

import requests

from .types import ConnectionInfo, StreamURL

logger = logging.getLogger(__name__)

# Upper bound on the body sample used for throughput estimation
SAMPLE_BYTES = 512 * 1024
# Small reads so the deadline is checked often on slow links
CHUNK_BYTES = 1024
MAX_PROBE_SECONDS = 10.0
HTTP_CLIENT_ERROR = 400


class ConnectionProbe:
    """
    Measures latency and throughput for a stream URL before playback starts.

    A probe never raises on network trouble: any failure yields
    ``ConnectionInfo.conservative()`` so playback can always start.

    Attributes:
        timeout: Wall-clock bound for the whole probe, in seconds.
        sample_bytes: Maximum number of body bytes read for the speed test.
        session: requests session used for the probe.
    """

    def __init__(
        self,
        timeout: float = MAX_PROBE_SECONDS,
        sample_bytes: int = SAMPLE_BYTES,
        session: requests.Session | None = None,
    ) -> None:
        """
        Initialize the probe.

        Args:
            timeout: Probe time limit in seconds, capped at 10 (default: 10.0).
            sample_bytes: Body sample size in bytes (default: 512 KiB).
            session: Optional requests session to reuse connections.
        """
        self.timeout = min(timeout, MAX_PROBE_SECONDS)
        self.sample_bytes = sample_bytes
        self.session = session or requests.Session()

    def probe(self, url: StreamURL) -> ConnectionInfo:
        """
        Probe a stream URL.

        Args:
            url: Stream URL to measure.

        Returns:
            Measured ConnectionInfo, or the conservative default on failure.
        """
        deadline = time.monotonic() + self.timeout

        try:
            start_time = time.perf_counter()
            # Half the budget each for connecting and for any single socket read;
            # the deadline itself is enforced between reads while sampling
            half = self.timeout / 2
            response = self.session.get(url, stream=True, timeout=(half, half))
            latency_ms = int((time.perf_counter() - start_time) * 1000)

            with response:
                if response.status_code >= HTTP_CLIENT_ERROR:
                    logger.warning("Probe got HTTP %d for %s", response.status_code, url)
                    return ConnectionInfo.conservative()

                if time.monotonic() >= deadline:
                    logger.warning("Probe of %s ran out of time before any data arrived", url)
                    return ConnectionInfo.conservative()

                bytes_read, elapsed = self._read_sample(response, deadline)
        except (requests.RequestException, OSError) as e:
            logger.debug("Probe failed for %s: %s", url, e)
            return ConnectionInfo.conservative()

        speed_mbps = (bytes_read * 8 / 1_000_000) / elapsed if elapsed > 0 else 0.0
        info = ConnectionInfo.measured(latency_ms, speed_mbps)
        logger.info(
            "Probed %s: latency %dms, %.1f Mbps (%s)",
            url,
            info.latency_ms,
            info.download_speed_mbps,
            info.speed_category.value,
        )
        return info

    def _read_sample(self, response: requests.Response, deadline: float) -> tuple[int, float]:
        """
        Read up to ``sample_bytes`` of the body, stopping at the deadline.

        Raises:
            requests.RequestException: If the body fails before any data arrived.

        Returns:
            Tuple of (bytes_read, elapsed_seconds).
        """
        bytes_read = 0
        start_time = time.perf_counter()

        try:
            for chunk in response.iter_content(chunk_size=CHUNK_BYTES):
                bytes_read += len(chunk)
                if bytes_read >= self.sample_bytes or time.monotonic() >= deadline:
                    break
        except requests.RequestException:
            # A read that stalls past the timeout still leaves a usable partial sample
            if not bytes_read:
                raise
            logger.debug("Probe read stalled after %d bytes", bytes_read)

        return bytes_read, time.perf_counter() - start_time

    async def probe_async(self, url: StreamURL) -> ConnectionInfo:
        """Run ``probe`` in the default executor without blocking the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.probe, url)

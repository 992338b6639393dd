"""HTTP health probe with a bounded retry budget."""

import time
from collections.abc import Callable

import requests
from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_fixed

from sre_workflow.common.logging import get_logger
from sre_workflow.deploy.config import ProbeConfig
from sre_workflow.deploy.models import ProbeResult

logger = get_logger(__name__)


class HealthProber:
    """Probes a health endpoint until it answers 2xx or attempts run out.

    Transport errors and timeouts count as failed attempts; they never
    propagate.

    Args:
        config: Probe settings
        session: requests session (injectable for tests)
        sleep: Sleep function used between attempts
        on_attempt: Callback invoked with (attempt number, healthy)
    """

    def __init__(
        self,
        config: ProbeConfig,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
        on_attempt: Callable[[int, bool], None] | None = None,
    ):
        self.config = config
        self.session = session or requests.Session()
        self.sleep = sleep
        self.on_attempt = on_attempt

    def probe(self, base_url: str) -> ProbeResult:
        """Probe ``base_url`` + configured path.

        Args:
            base_url: Service URL, e.g. ``https://svc-xyz.a.run.app``

        Returns:
            ProbeResult describing the last attempt
        """
        url = base_url.rstrip("/") + self.config.path
        result = ProbeResult(url=url, healthy=False, attempts=0)

        def attempt() -> bool:
            result.attempts += 1
            result.status_code = None
            result.error = None
            try:
                response = self.session.get(url, timeout=self.config.timeout_seconds)
                result.status_code = response.status_code
                healthy = 200 <= response.status_code < 300
            except requests.RequestException as e:
                result.error = str(e)
                healthy = False

            logger.info(
                "Health probe attempt",
                url=url,
                attempt=result.attempts,
                status_code=result.status_code,
                error=result.error,
                healthy=healthy,
            )
            if self.on_attempt:
                self.on_attempt(result.attempts, healthy)
            return healthy

        retrying = Retrying(
            stop=stop_after_attempt(self.config.attempts),
            wait=wait_fixed(self.config.delay_seconds),
            retry=retry_if_result(lambda healthy: not healthy),
            retry_error_callback=lambda state: state.outcome.result(),
            sleep=self.sleep,
        )
        result.healthy = retrying(attempt)
        return result

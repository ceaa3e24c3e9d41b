"""
Periodic health reporting.

Every interval the monitor asks the health callback whether the process is
healthy and reports the answer to GameLift. The callback races a deadline equal
to the interval: GameLift records a process that does not answer in time as
unhealthy, so a slow callback is reported as unhealthy rather than delaying the
report. The monitor stops itself the first time it finds the process no longer
ready.
"""

from collections.abc import Callable

import anyio

from gamelift_io.server.models import OnHealthCheckFnT
from gamelift_io.shared.network import Network
from gamelift_io.utilities.logging import get_logger

logger = get_logger(__name__)


class HealthMonitor:
    def __init__(
        self,
        network: Network,
        on_health_check: OnHealthCheckFnT,
        is_ready: Callable[[], bool],
        interval: float = 60.0,
    ) -> None:
        self._network = network
        self._on_health_check = on_health_check
        self._is_ready = is_ready
        self._interval = interval

    @property
    def interval(self) -> float:
        return self._interval

    async def run(self) -> None:
        """Report health every interval until the process stops being ready.

        A tick that is already running when the process stops being ready is
        allowed to finish.
        """
        async with anyio.create_task_group() as tg:
            next_tick = anyio.current_time() + self._interval
            while True:
                await anyio.sleep_until(next_tick)
                if not self._is_ready():
                    logger.debug("Process is no longer ready, stopping health checks")
                    break
                tg.start_soon(self.report_health)
                next_tick += self._interval

    async def check_health(self) -> bool:
        """Run the health callback against the deadline. Missing the deadline counts as unhealthy."""
        healthy = False
        with anyio.move_on_after(self._interval) as scope:
            healthy = await self._on_health_check()

        if scope.cancelled_caught:
            logger.warning("Health check did not finish within %s seconds, reporting unhealthy", self._interval)
            return False
        return bool(healthy)

    async def report_health(self) -> None:
        logger.debug("Running health check")
        try:
            healthy = await self.check_health()
        except Exception:
            logger.exception("Health check callback failed, reporting unhealthy")
            healthy = False

        try:
            await self._network.report_health(healthy)
        except Exception:
            logger.exception("Failed to report health status to GameLift")

"""Background reachability probing for offline forwarding resolvers.

Inputs:
  - A ForwardingResolver that has just been marked offline.

Outputs:
  - HealthMonitor: repeatedly sends the resolver's validation query to its
    upstream until a positive answer arrives, then marks the resolver online
    and exits. The monitor runs on a daemon thread and has no external
    cancellation.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING, Callable, Optional

if TYPE_CHECKING:  # pragma: no cover - typing only
    from eyrie.resolvers.forwarding import ForwardingResolver

logger = logging.getLogger(__name__)


class HealthMonitor:
    """Brief: Probe an upstream until it answers the validation query.

    Inputs (constructor):
      - resolver: The offline ForwardingResolver; its validate() performs the
        probe with the same server, port, transport and timeout as live
        traffic.
      - interval: Seconds to sleep between failed probes (defaults to the
        resolver's validation_interval).
      - sleep: Sleep function, replaceable in tests.

    Outputs:
      - HealthMonitor; run() blocks until recovery, start() runs it detached.

    Example:
        >>> monitor = HealthMonitor(resolver)  # doctest: +SKIP
        >>> monitor.start()  # doctest: +SKIP
    """

    def __init__(
        self,
        resolver: "ForwardingResolver",
        interval: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.resolver = resolver
        self.interval = float(
            interval if interval is not None else resolver.validation_interval
        )
        self._sleep = sleep
        self.attempts = 0

    def probe_once(self) -> bool:
        """Brief: Run one validation probe.

        Inputs:
          - None.

        Outputs:
          - bool: True when the upstream answered positively and the resolver
            was marked online; False when it is still down.
        """
        self.attempts += 1
        name = self.resolver.name
        query = self.resolver.validation_query
        try:
            ok, rcode_name = self.resolver.validate()
        except Exception as exc:
            logger.debug(
                "Resolver %s is still down, got error %s when trying to resolve %s",
                name,
                exc,
                query,
            )
            return False

        if ok:
            logger.info(
                "Marking resolver %s as online after getting successful response from query for %s",
                name,
                query,
            )
            self.resolver.mark_online()
            return True

        logger.debug(
            "Resolver %s is still down, got response %s from upstream server for query %s",
            name,
            rcode_name,
            query,
        )
        return False

    def run(self) -> None:
        logger.info("Status monitoring thread for resolver %s started", self.resolver.name)
        while not self.probe_once():
            self._sleep(self.interval)

    def start(self) -> threading.Thread:
        thread = threading.Thread(
            target=self.run,
            name=f"HealthMonitor-{self.resolver.name}",
            daemon=True,
        )
        thread.start()
        return thread

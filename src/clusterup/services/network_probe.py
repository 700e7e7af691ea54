"""TCP dial probe used to wait for a listener."""

import socket
import threading
from typing import Optional

from clusterup.errors import DialTimeoutError, ProbeArgumentError
from clusterup.services.waiting import ensure_not_cancelled, pause


class NetworkProbe:
    """Dials host:port until a connection succeeds or attempts run out."""

    def __init__(self, logger, socket_module=socket):
        self.logger = logger
        self.socket = socket_module

    def wait_for_successful_dial(
        self,
        address: str,
        verbose: bool,
        timeout: float,
        interval: float,
        attempts: int,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """Returns the attempt number that connected.

        Raises DialTimeoutError after `attempts` failed connects.
        """
        host, port = self._split_address(address)
        if attempts < 1:
            raise ProbeArgumentError(f"Dial to {address} needs at least one attempt, got {attempts}")
        last_error: Optional[OSError] = None

        for attempt in range(1, attempts + 1):
            ensure_not_cancelled(cancel_event, f"Dial to {address}")
            try:
                conn = self.socket.create_connection((host, port), timeout=timeout)
            except OSError as exc:
                last_error = exc
                self.logger.debug("Dial %s failed on attempt %s/%s: %s", address, attempt, attempts, exc)
                if attempt < attempts:
                    pause(interval, cancel_event, f"Dial to {address}")
                continue

            conn.close()
            if verbose:
                self.logger.info("Connected to %s", address)
            else:
                self.logger.debug("Connected to %s", address)
            return attempt

        raise DialTimeoutError(address, attempts, last_error)

    @staticmethod
    def _split_address(address: str):
        host, _, port = address.rpartition(":")
        if not host or not port.isdigit():
            raise ProbeArgumentError(f"Address must be host:port, got {address!r}")
        return host.strip("[]"), int(port)

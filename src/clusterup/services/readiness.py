"""Readiness polling of the control plane health endpoint."""

import os
import threading
import time
from typing import Optional

import requests

from clusterup.constants import MASTER_CA_FILE, MASTER_DIR_NAME
from clusterup.errors import ReadinessError
from clusterup.services.waiting import ensure_not_cancelled, pause


class ReadinessPoller:
    """Polls /healthz/ready and classifies each response.

    200 is ready, 503 and 403 mean the server is still initializing, anything
    else (including transport errors) stops the poll.
    """

    READY_STATUS = 200
    RETRY_STATUSES = (503, 403)

    def __init__(
        self,
        logger,
        interval: float = 0.5,
        request_timeout: float = 10.0,
        deadline: Optional[float] = None,
        requests_module=requests,
        clock=time.monotonic,
    ):
        self.logger = logger
        self.interval = interval
        self.request_timeout = request_timeout
        self.deadline = deadline
        self.requests = requests_module
        self.clock = clock

    def build_session(self, config_dir: str):
        """Returns a session trusting the CA issued in the staged configuration."""
        ca_cert = os.path.join(config_dir, MASTER_DIR_NAME, MASTER_CA_FILE)
        if not os.path.isfile(ca_cert):
            raise ReadinessError(f"Master CA certificate not found: {ca_cert}")

        session = self.requests.Session()
        session.verify = ca_cert
        return session

    def wait_until_ready(self, session, url: str, cancel_event: Optional[threading.Event] = None) -> int:
        """Returns the number of requests it took to get a 200."""
        started = self.clock()
        attempt = 0

        while True:
            ensure_not_cancelled(cancel_event, "Readiness check")
            attempt += 1
            try:
                response = session.get(url, timeout=self.request_timeout)
            except self.requests.RequestException as exc:
                raise ReadinessError(f"Cannot access master readiness URL {url}: {exc}") from exc

            status = response.status_code
            if status == self.READY_STATUS:
                self.logger.debug("Readiness URL %s returned 200 after %s request(s)", url, attempt)
                return attempt

            if status not in self.RETRY_STATUSES:
                body = self._read_body(response)
                raise ReadinessError(
                    f"Server is not ready. Response ({status}): {body}",
                    status_code=status,
                    body=body,
                )

            self.logger.debug("Readiness URL %s returned %s, retrying", url, status)
            if self.deadline is not None and self.clock() - started >= self.deadline:
                raise ReadinessError(
                    f"Server did not become ready within {self.deadline:g}s. Last response: {status}",
                    status_code=status,
                )
            pause(self.interval, cancel_event, "Readiness check")

    @staticmethod
    def _read_body(response) -> str:
        try:
            return response.text
        except (UnicodeDecodeError, AttributeError):
            return ""

"""TCP port conflict detection from /proc/net/tcp dumps."""

from typing import Iterable, Iterator, List, NamedTuple, Set

from clusterup.constants import TCP_LISTEN_STATE
from clusterup.errors import PortConflictError


class ConnectionRecord(NamedTuple):
    local_port: int
    state: str


class PortConflictChecker:
    """Reports which required ports are listening on the Docker host."""

    def __init__(self, logger):
        self.logger = logger

    @staticmethod
    def parse_connection_table(data: str) -> Iterator[ConnectionRecord]:
        """Yields one record per well-formed connection line.

        Header lines and lines that cannot be parsed are skipped.
        """
        for line in data.splitlines():
            parts = line.split()
            if len(parts) < 4:
                continue
            # connection rows start with a slot number such as "0:"
            if ":" not in parts[0]:
                continue

            local_address = parts[1].split(":")
            if len(local_address) < 2:
                continue
            try:
                port = int(local_address[-1], 16)
            except ValueError:
                continue
            yield ConnectionRecord(local_port=port, state=parts[3].upper())

    def get_used_ports(self, data: str) -> Set[int]:
        ports = {
            record.local_port
            for record in self.parse_connection_table(data)
            if record.state == TCP_LISTEN_STATE
        }
        self.logger.debug("Used ports on Docker host: %s", sorted(ports))
        return ports

    def find_conflicts(self, data: str, ports: Iterable[int]) -> List[int]:
        used = self.get_used_ports(data)
        return [port for port in ports if port in used]

    def check_ports_in_use(self, data: str, ports: Iterable[int]):
        conflicts = self.find_conflicts(data, ports)
        if conflicts:
            raise PortConflictError(conflicts)

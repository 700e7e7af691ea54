"""Shared domain models for clusterup."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .constants import (
    DEFAULT_BASE_BINDS,
    DEFAULT_IMAGE_TAG,
    DEFAULT_REQUIRED_PORTS,
    MASTER_PORT,
    WILDCARD_DNS_SUFFIX,
)


@dataclass(frozen=True)
class StartOptions:
    """Parameters of one bring-up attempt, fixed by the caller."""

    server_ip: str
    host_volumes_dir: str
    host_config_dir: str
    host_data_dir: Optional[str] = None
    image_tag: str = DEFAULT_IMAGE_TAG
    use_shared_volume: bool = False
    use_existing_config: bool = False
    environment: Tuple[str, ...] = ()
    log_level: int = 0


@dataclass(frozen=True)
class StartPolicy:
    """Ports, binds and timings used by the orchestrator.

    Passed to the orchestrator constructor so that instances with different
    policies can coexist.
    """

    required_ports: Tuple[int, ...] = DEFAULT_REQUIRED_PORTS
    base_binds: Tuple[str, ...] = DEFAULT_BASE_BINDS
    master_port: int = MASTER_PORT
    initial_status_check_wait: float = 4.0
    dial_timeout: float = 0.2
    dial_interval: float = 1.0
    server_up_attempts: int = 35
    readiness_interval: float = 0.5
    readiness_request_timeout: float = 10.0
    readiness_timeout: Optional[float] = 300.0
    wildcard_dns_suffix: str = WILDCARD_DNS_SUFFIX
    remove_container_on_failure: bool = False


@dataclass(frozen=True)
class ContainerSpec:
    """A single container invocation against the Docker host."""

    image: str
    command: Tuple[str, ...] = ()
    name: Optional[str] = None
    entrypoint: Optional[str] = None
    privileged: bool = False
    host_network: bool = False
    host_pid: bool = False
    discard: bool = False
    binds: Tuple[str, ...] = ()
    env: Tuple[str, ...] = ()


class StartupStage(str, Enum):
    INIT = "init"
    PORT_CHECK = "port_check"
    CONFIG_RESOLVED = "config_resolved"
    CONTAINER_STARTING = "container_starting"
    CONTAINER_RUNNING = "container_running"
    LISTENER_READY = "listener_ready"
    SERVICE_READY = "service_ready"
    DONE = "done"
    FAILED = "failed"

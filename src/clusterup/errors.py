"""Domain errors for clusterup."""

from typing import Iterable, List, Optional


class ClusterUpError(RuntimeError):
    """Raised when the cluster bring-up cannot continue safely."""

    kind = "ClusterUpError"


class CommandError(ClusterUpError):
    """An external command exited non-zero or could not be executed."""

    kind = "CommandFailed"

    def __init__(self, message: str, cmd: Optional[List[str]] = None, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.cmd = cmd or []
        self.returncode = returncode
        self.stderr = stderr


class PortCheckError(ClusterUpError):
    kind = "PortCheckFailed"


class PortConflictError(ClusterUpError):
    """Required ports are already bound on the runtime host."""

    kind = "PortConflict"

    def __init__(self, ports: Iterable[int]):
        self.ports = list(ports)
        port_list = ", ".join(str(port) for port in self.ports)
        super().__init__(f"The following required ports are in use: {port_list}")


class DialTimeoutError(ClusterUpError):
    kind = "Timeout"

    def __init__(self, address: str, attempts: int, last_error: Optional[BaseException] = None):
        self.address = address
        self.attempts = attempts
        self.last_error = last_error
        message = f"Could not connect to {address} after {attempts} attempt(s)"
        if last_error is not None:
            message = f"{message}: {last_error}"
        super().__init__(message)


class ConfigGenerationError(ClusterUpError):
    kind = "ConfigGenerationFailed"


class StageError(ClusterUpError):
    kind = "StageFailure"


class ConfigUpdateError(ClusterUpError):
    kind = "ConfigUpdateFailed"


class DaemonStartError(ClusterUpError):
    kind = "DaemonStartFailed"


class StateQueryError(ClusterUpError):
    kind = "StateQueryFailed"


class FailedToStartError(ClusterUpError):
    """The control plane container exited right after launch."""

    kind = "FailedToStart"

    def __init__(self, message: str, container_name: str):
        super().__init__(message)
        self.container_name = container_name


class TimedOutWaitingForStartError(ClusterUpError):
    """The container is running but its API listener never opened."""

    kind = "TimedOutWaitingForStart"

    def __init__(self, message: str, container_name: str):
        super().__init__(message)
        self.container_name = container_name


class ReadinessError(ClusterUpError):
    """The readiness endpoint failed with a transport error or an unexpected status."""

    kind = "ReadinessFailed"

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ProbeArgumentError(ClusterUpError):
    """A dial was requested with an unusable address or attempt count."""

    kind = "InvalidArgument"


class StartupCancelled(ClusterUpError):
    kind = "Cancelled"

"""Docker runtime services for clusterup."""

from typing import List

from clusterup.errors import ClusterUpError
from clusterup.models import ContainerSpec


class DockerRuntimeService:
    """Starts, inspects and removes containers through the docker CLI."""

    def __init__(self, logger, console, command_runner):
        self.logger = logger
        self.console = console
        self.command_runner = command_runner

    def validate_environment(self):
        self.console.print("[blue]Validating Docker environment...[/blue]")
        self.command_runner.run(["docker", "--version"])
        self.console.print("[green]Docker is available.[/green]")

    def build_container_args(self, spec: ContainerSpec) -> List[str]:
        args: List[str] = []
        if spec.name:
            args += ["--name", spec.name]
        if spec.discard:
            args.append("--rm")
        if spec.privileged:
            args.append("--privileged")
        if spec.host_network:
            args += ["--net", "host"]
        if spec.host_pid:
            args += ["--pid", "host"]
        for bind in spec.binds:
            args += ["-v", bind]
        for env in spec.env:
            args += ["-e", env]
        if spec.entrypoint:
            args += ["--entrypoint", spec.entrypoint]
        args.append(spec.image)
        args += list(spec.command)
        return args

    def run(self, spec: ContainerSpec):
        """Runs a container in the foreground and waits for it to exit."""
        return self.command_runner.run(["docker", "run"] + self.build_container_args(spec))

    def output(self, spec: ContainerSpec) -> str:
        return self.run(spec).stdout or ""

    def combined_output(self, spec: ContainerSpec) -> str:
        result = self.run(spec)
        return (result.stdout or "") + (result.stderr or "")

    def start(self, spec: ContainerSpec) -> str:
        """Starts a detached container and returns its id."""
        result = self.command_runner.run(["docker", "run", "-d"] + self.build_container_args(spec))
        container_id = (result.stdout or "").strip()
        self.logger.debug("Started container %s", container_id or spec.name)
        return container_id

    def create(self, spec: ContainerSpec) -> str:
        result = self.command_runner.run(["docker", "create"] + self.build_container_args(spec))
        return (result.stdout or "").strip()

    def get_container_state(self, name: str) -> bool:
        result = self.command_runner.run(
            ["docker", "inspect", "--type", "container", "--format", "{{.State.Running}}", name]
        )
        state = (result.stdout or "").strip().lower()
        if state not in ("true", "false"):
            raise ClusterUpError(f"Unexpected state for container {name}: {state or '<empty>'}")
        return state == "true"

    def copy_from_container(self, container: str, source: str, destination: str):
        self.command_runner.run(["docker", "cp", f"{container}:{source}", destination])

    def copy_to_container(self, source: str, container: str, destination: str):
        self.command_runner.run(["docker", "cp", source, f"{container}:{destination}"])

    def remove_container(self, container: str):
        self.command_runner.run(["docker", "rm", "-f", container])

    def stop_and_remove_container(self, container: str):
        self.console.print(f"[dim]Removing container {container}...[/dim]")
        self.logger.info("Stopping and removing container %s", container)
        self.command_runner.run(["docker", "stop", container], check=False)
        self.remove_container(container)

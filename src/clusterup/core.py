import logging
import posixpath
import threading
from typing import List, Optional, Tuple

from rich.console import Console

from .constants import (
    CONTAINER_CONFIG_DIR,
    CONTAINER_ETCD_DIR,
    DEFAULT_CONTAINER_NAME,
    DEFAULT_IMAGE,
    MASTER_CONFIG_FILE,
    MASTER_DIR_NAME,
    NODE_CONFIG_FILE,
    READINESS_PATH,
)
from .errors import (
    ClusterUpError,
    ConfigGenerationError,
    ConfigUpdateError,
    DaemonStartError,
    DialTimeoutError,
    FailedToStartError,
    PortCheckError,
    StageError,
    StateQueryError,
    TimedOutWaitingForStartError,
)
from .errors_catalog import actionable_error
from .models import ContainerSpec, StartOptions, StartPolicy, StartupStage
from .services.command_runner import CommandRunner
from .services.config_patcher import ConfigPatcher
from .services.config_stager import ConfigStager, StagedConfig
from .services.docker_runtime import DockerRuntimeService
from .services.filesystem import FileSystemService
from .services.host import HostHelper
from .services.network_probe import NetworkProbe
from .services.observer import ConsoleObserver, StartupObserver
from .services.ports import PortConflictChecker
from .services.readiness import ReadinessPoller
from .services.waiting import ensure_not_cancelled, pause

console = Console()
logger = logging.getLogger("clusterup")


class StartupOrchestrator:
    """Brings up an OpenShift master inside a Docker container.

    `start` walks init -> config_resolved -> container_starting ->
    container_running -> listener_ready -> service_ready -> done and raises a
    classified ClusterUpError from whichever stage failed.
    """

    def __init__(
        self,
        image: str = DEFAULT_IMAGE,
        container_name: str = DEFAULT_CONTAINER_NAME,
        public_hostname: Optional[str] = None,
        routing_suffix: Optional[str] = None,
        policy: Optional[StartPolicy] = None,
        observer: Optional[StartupObserver] = None,
        runtime: Optional[DockerRuntimeService] = None,
        host_helper: Optional[HostHelper] = None,
        network_probe: Optional[NetworkProbe] = None,
        readiness_poller: Optional[ReadinessPoller] = None,
    ):
        self.image = image
        self.container_name = container_name
        self.public_hostname = public_hostname
        self.routing_suffix = routing_suffix
        self.policy = policy or StartPolicy()
        self.observer = observer or ConsoleObserver(logger=logger, console=console)
        self.state = StartupStage.INIT

        self.filesystem_service = FileSystemService(logger=logger, console=console)
        self.runtime = runtime or DockerRuntimeService(
            logger=logger,
            console=console,
            command_runner=CommandRunner(logger=logger),
        )
        self.host_helper = host_helper or HostHelper(runtime=self.runtime, image=self.image, logger=logger)
        self.stager = ConfigStager(
            host_helper=self.host_helper,
            filesystem_service=self.filesystem_service,
            logger=logger,
        )
        self.patcher = ConfigPatcher(
            stager=self.stager,
            filesystem_service=self.filesystem_service,
            logger=logger,
            routing_suffix=self.routing_suffix,
            wildcard_dns_suffix=self.policy.wildcard_dns_suffix,
        )
        self.port_checker = PortConflictChecker(logger=logger)
        self.network_probe = network_probe or NetworkProbe(logger=logger)
        self.readiness_poller = readiness_poller or ReadinessPoller(
            logger=logger,
            interval=self.policy.readiness_interval,
            request_timeout=self.policy.readiness_request_timeout,
            deadline=self.policy.readiness_timeout,
        )

    def master_url(self, ip: str) -> str:
        return f"https://{ip}:{self.policy.master_port}"

    def healthz_ready_url(self, ip: str) -> str:
        return f"{self.master_url(ip)}{READINESS_PATH}"

    def _run_stage(self, stage: StartupStage, message: str, callback, *args, cancel_event=None, **kwargs):
        self.state = stage
        self.observer.stage_entered(stage, message)
        try:
            ensure_not_cancelled(cancel_event, f"Stage {stage.value}")
            result = callback(*args, **kwargs)
        except Exception as exc:
            self.state = StartupStage.FAILED
            self.observer.stage_failed(stage, exc)
            raise
        self.observer.stage_succeeded(stage)
        return result

    def _discarded_host_container(self, **kwargs) -> ContainerSpec:
        return ContainerSpec(
            image=self.image,
            privileged=True,
            host_network=True,
            discard=True,
            **kwargs,
        )

    def validate_environment(self):
        self.runtime.validate_environment()

    def test_ports(self):
        """Fails with PortConflictError when a required port is listening on the Docker host."""
        self._run_stage(StartupStage.PORT_CHECK, "Checking for available ports", self._check_ports)

    def _check_ports(self):
        spec = self._discarded_host_container(
            host_pid=True,
            entrypoint="/bin/bash",
            command=("-c", "cat /proc/net/tcp /proc/net/tcp6"),
        )
        try:
            port_data = self.runtime.combined_output(spec)
        except ClusterUpError as exc:
            raise PortCheckError(f"Cannot get TCP port information from the Docker host: {exc}") from exc
        self.port_checker.check_ports_in_use(port_data, self.policy.required_ports)

    def test_ip(self, ip: str, cancel_event: Optional[threading.Event] = None):
        """Checks that `ip` is reachable on the master port from this machine."""
        spec = ContainerSpec(
            image=self.image,
            entrypoint="socat",
            command=(
                f"TCP-LISTEN:{self.policy.master_port},crlf,reuseaddr,fork",
                "SYSTEM:\"echo 'hello world'\"",
            ),
            privileged=True,
            host_network=True,
        )
        try:
            container_id = self.runtime.start(spec)
        except ClusterUpError as exc:
            raise ClusterUpError(f"Cannot start simple server on Docker host: {exc}") from exc

        try:
            self.network_probe.wait_for_successful_dial(
                f"{ip}:{self.policy.master_port}",
                verbose=False,
                timeout=self.policy.dial_timeout,
                interval=self.policy.dial_interval,
                attempts=10,
                cancel_event=cancel_event,
            )
        finally:
            try:
                self.runtime.stop_and_remove_container(container_id)
            except ClusterUpError as exc:
                logger.warning("Could not remove test server container %s: %s", container_id, exc)

    def server_ip(self) -> str:
        result = self.runtime.output(self._discarded_host_container(command=("start", "--print-ip")))
        return result.strip()

    def other_ips(self, exclude_ip: str) -> List[str]:
        result = self.runtime.output(self._discarded_host_container(entrypoint="hostname", command=("-I",)))
        # IPv6 addresses are ignored
        return [ip for ip in result.split() if ip != exclude_ip and ":" not in ip]

    def start(self, options: StartOptions, cancel_event: Optional[threading.Event] = None) -> str:
        """Starts the master container and returns the local staged config directory.

        The caller owns the returned directory and must remove it when done.
        """
        self.state = StartupStage.INIT
        binds, env = self._build_binds_and_env(options)
        container_launched = False

        try:
            staged = self._run_stage(
                StartupStage.CONFIG_RESOLVED,
                "Resolving OpenShift configuration",
                self._resolve_config,
                options,
                binds,
                env,
                cancel_event=cancel_event,
            )
            with staged:
                self._run_stage(
                    StartupStage.CONTAINER_STARTING,
                    f"Starting OpenShift using container '{self.container_name}'",
                    self._start_daemon,
                    options,
                    binds,
                    env,
                    cancel_event=cancel_event,
                )
                container_launched = True
                self._run_stage(
                    StartupStage.CONTAINER_RUNNING,
                    "Waiting for OpenShift container to keep running",
                    self._wait_for_running,
                    cancel_event,
                    cancel_event=cancel_event,
                )
                self._run_stage(
                    StartupStage.LISTENER_READY,
                    "Waiting for API server to start listening",
                    self._wait_for_listener,
                    options.server_ip,
                    cancel_event,
                    cancel_event=cancel_event,
                )
                self._run_stage(
                    StartupStage.SERVICE_READY,
                    "Waiting for API server to be ready",
                    self._wait_for_ready,
                    staged,
                    options.server_ip,
                    cancel_event,
                    cancel_event=cancel_event,
                )
                config_dir = staged.handoff()
        except ClusterUpError:
            if container_launched and self.policy.remove_container_on_failure:
                self._teardown_container()
            raise

        self.state = StartupStage.DONE
        console.print("[green]OpenShift server started[/green]")
        logger.info("OpenShift server started; configuration copied to %s", config_dir)
        return config_dir

    def _build_binds_and_env(self, options: StartOptions) -> Tuple[List[str], List[str]]:
        binds = list(self.policy.base_binds)
        env: List[str] = []
        volumes_dir = options.host_volumes_dir
        if options.use_shared_volume:
            binds.append(f"{volumes_dir}:{volumes_dir}:shared")
            env.append("OPENSHIFT_CONTAINERIZED=false")
        else:
            binds.append(f"{volumes_dir}:{volumes_dir}")
        env.extend(options.environment)
        binds.append(f"{options.host_config_dir}:{CONTAINER_CONFIG_DIR}:z")
        return binds, env

    def _resolve_config(self, options: StartOptions, binds: List[str], env: List[str]) -> StagedConfig:
        if options.use_existing_config:
            existing = self._probe_existing_config(options.host_config_dir)
            if existing is not None:
                console.print("[green]Using existing OpenShift configuration.[/green]")
                return existing

        self._generate_config(options, binds, env)

        staged = self.stager.stage(options.host_config_dir)
        try:
            self.patcher.patch(staged, options.host_config_dir, options.server_ip)
        except ClusterUpError:
            staged.release()
            raise
        return staged

    def _probe_existing_config(self, host_dir: str) -> Optional[StagedConfig]:
        try:
            staged = self.stager.stage(host_dir)
        except StageError as exc:
            logger.info("No existing configuration could be read from %s: %s", host_dir, exc)
            return None

        if staged.contains(MASTER_DIR_NAME, MASTER_CONFIG_FILE):
            return staged

        logger.info("No master configuration found in %s; a new one will be created.", host_dir)
        staged.release()
        return None

    def _generate_config(self, options: StartOptions, binds: List[str], env: List[str]):
        console.print("[blue]Creating initial OpenShift configuration[/blue]")
        logger.info("Creating OpenShift configuration at %s on Docker host", options.host_config_dir)

        spec = ContainerSpec(
            image=self.image,
            command=tuple(self.build_create_config_command(options)),
            privileged=True,
            host_network=True,
            host_pid=True,
            discard=True,
            binds=tuple(binds),
            env=tuple(env),
        )
        try:
            self.runtime.run(spec)
        except ClusterUpError as exc:
            message = actionable_error("config_generation_failed", host_config_dir=options.host_config_dir)
            raise ConfigGenerationError(f"{message} Cause: {exc}") from exc

    def image_repository(self) -> str:
        name, _, tag = self.image.rpartition(":")
        if name and "/" not in tag:
            return name
        return self.image

    def build_create_config_command(self, options: StartOptions) -> List[str]:
        cmd = [
            "start",
            f"--images={self.image_repository()}-${{component}}:{options.image_tag}",
            f"--master={options.server_ip}",
            f"--volume-dir={options.host_volumes_dir}",
            "--dns=0.0.0.0:53",
            f"--write-config={CONTAINER_CONFIG_DIR}",
        ]
        if self.public_hostname:
            cmd.append(f"--public-master=https://{self.public_hostname}:{self.policy.master_port}")
        return cmd

    def get_config_file_paths(self) -> Tuple[str, str]:
        try:
            hostname = self.host_helper.hostname()
        except ClusterUpError as exc:
            raise ConfigUpdateError(f"Could not get OpenShift configuration file paths: {exc}") from exc

        master_config = posixpath.join(CONTAINER_CONFIG_DIR, MASTER_DIR_NAME, MASTER_CONFIG_FILE)
        node_config = posixpath.join(CONTAINER_CONFIG_DIR, f"node-{hostname}", NODE_CONFIG_FILE)
        return master_config, node_config

    def build_start_command(self, options: StartOptions, master_config: str, node_config: str) -> List[str]:
        cmd = [
            "start",
            f"--master-config={master_config}",
            f"--node-config={node_config}",
        ]
        if options.log_level > 0:
            cmd.append(f"--loglevel={options.log_level}")
        return cmd

    def _start_daemon(self, options: StartOptions, binds: List[str], env: List[str]):
        master_config, node_config = self.get_config_file_paths()

        daemon_binds = list(binds)
        if options.host_data_dir:
            daemon_binds.append(f"{options.host_data_dir}:{CONTAINER_ETCD_DIR}:z")

        spec = ContainerSpec(
            image=self.image,
            name=self.container_name,
            command=tuple(self.build_start_command(options, master_config, node_config)),
            privileged=True,
            host_network=True,
            host_pid=True,
            binds=tuple(daemon_binds),
            env=tuple(env),
        )
        try:
            self.runtime.start(spec)
        except ClusterUpError as exc:
            raise DaemonStartError(f"Cannot start OpenShift daemon in container {self.container_name}: {exc}") from exc

    def _wait_for_running(self, cancel_event: Optional[threading.Event]):
        # an immediate crash shows up as a stopped container after the grace period
        pause(self.policy.initial_status_check_wait, cancel_event, "Container state check")
        try:
            running = self.runtime.get_container_state(self.container_name)
        except ClusterUpError as exc:
            raise StateQueryError(f"Cannot get state of OpenShift container {self.container_name}: {exc}") from exc

        if not running:
            raise FailedToStartError(
                actionable_error("failed_to_start", container_name=self.container_name),
                container_name=self.container_name,
            )

    def _wait_for_listener(self, server_ip: str, cancel_event: Optional[threading.Event]):
        address = f"{server_ip}:{self.policy.master_port}"
        try:
            self.network_probe.wait_for_successful_dial(
                address,
                verbose=True,
                timeout=self.policy.dial_timeout,
                interval=self.policy.dial_interval,
                attempts=self.policy.server_up_attempts,
                cancel_event=cancel_event,
            )
        except DialTimeoutError as exc:
            raise TimedOutWaitingForStartError(
                actionable_error(
                    "timed_out_waiting_for_start",
                    container_name=self.container_name,
                    address=address,
                ),
                container_name=self.container_name,
            ) from exc

    def _wait_for_ready(self, staged: StagedConfig, server_ip: str, cancel_event: Optional[threading.Event]):
        session = self.readiness_poller.build_session(staged.path)
        try:
            self.readiness_poller.wait_until_ready(session, self.healthz_ready_url(server_ip), cancel_event)
        finally:
            session.close()

    def _teardown_container(self):
        try:
            self.runtime.stop_and_remove_container(self.container_name)
        except ClusterUpError as exc:
            logger.warning("Could not remove container %s after failed start: %s", self.container_name, exc)

import logging
import os
from dataclasses import asdict, replace

import click
from rich.console import Console
from rich.logging import RichHandler

from .constants import DEFAULT_CONFIG_FILE_NAME, DEFAULT_CONTAINER_NAME, DEFAULT_IMAGE, DEFAULT_IMAGE_TAG
from .core import StartupOrchestrator
from .errors import ClusterUpError
from .models import StartOptions, StartPolicy
from .services.config_loader import ConfigLoader
from .services.manifest import ManifestObserver
from .services.observer import CompositeObserver, ConsoleObserver

DEFAULT_HOST_CONFIG_DIR = "/var/lib/origin/openshift.local.config"
DEFAULT_HOST_VOLUMES_DIR = "/var/lib/origin/openshift.local.volumes"

console = Console()


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


def _normalize_environment(cli_env, config_env):
    if cli_env:
        return tuple(cli_env)
    if isinstance(config_env, dict):
        return tuple(f"{key}={value}" for key, value in config_env.items())
    return tuple(str(item) for item in (config_env or ()))


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


def _configure_logging(verbose: bool, log_file):
    logger = logging.getLogger("clusterup")
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)
    return logger


def _load_config(config):
    config_loader = ConfigLoader()
    resolved_config = config
    if resolved_config is None:
        default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE_NAME)
        if os.path.exists(default_config_path):
            resolved_config = default_config_path
    try:
        return config_loader.load(resolved_config)
    except ClusterUpError as exc:
        raise click.ClickException(str(exc)) from exc


@click.group()
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML configuration file. Defaults to {DEFAULT_CONFIG_FILE_NAME} if present.",
)
@click.option("--image", required=False, help=f"OpenShift image (default: {DEFAULT_IMAGE})")
@click.option(
    "--container-name",
    required=False,
    help=f"Name of the OpenShift container (default: {DEFAULT_CONTAINER_NAME})",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.pass_context
def main(ctx, config, image, container_name, verbose, log_file):
    """Start a single-node OpenShift cluster in Docker."""
    config_values = _load_config(config)
    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")
    _configure_logging(verbose, log_file)

    ctx.obj = {
        "config": config_values,
        "image": _resolve_option(image, config_values, "image", default=DEFAULT_IMAGE),
        "container_name": _resolve_option(
            container_name, config_values, "container_name", default=DEFAULT_CONTAINER_NAME
        ),
    }


@main.command()
@click.option("--server-ip", required=False, help="IP of the Docker host (detected when omitted)")
@click.option("--image-tag", required=False, help=f"Image tag for OpenShift components (default: {DEFAULT_IMAGE_TAG})")
@click.option("--public-hostname", required=False, help="Public hostname for the master API")
@click.option("--routing-suffix", required=False, help="Explicit routing subdomain for applications")
@click.option("--host-config-dir", required=False, help="Configuration directory on the Docker host")
@click.option("--host-volumes-dir", required=False, help="Volumes directory on the Docker host")
@click.option("--host-data-dir", required=False, help="etcd data directory on the Docker host")
@click.option("--use-existing-config", is_flag=True, default=None, help="Reuse configuration already on the host")
@click.option("--use-shared-volume", is_flag=True, default=None, help="Mount the volumes directory as shared")
@click.option("--env", "-e", "environment", multiple=True, help="Environment override KEY=VALUE (repeatable)")
@click.option("--log-level", type=int, default=None, help="OpenShift server log level")
@click.option("--check-ports/--skip-port-check", default=None, help="Check for port conflicts before starting")
@click.option("--readiness-timeout", type=float, default=None, help="Seconds to wait for /healthz/ready (0 = no limit)")
@click.option("--server-up-attempts", type=int, default=None, help="Dial attempts while waiting for the API server")
@click.option(
    "--remove-container-on-failure",
    is_flag=True,
    default=None,
    help="Remove the OpenShift container if startup fails after it was launched",
)
@click.option("--manifest-file", type=click.Path(), help="Write a JSON run manifest to this path")
@click.pass_obj
def up(
    obj,
    server_ip,
    image_tag,
    public_hostname,
    routing_suffix,
    host_config_dir,
    host_volumes_dir,
    host_data_dir,
    use_existing_config,
    use_shared_volume,
    environment,
    log_level,
    check_ports,
    readiness_timeout,
    server_up_attempts,
    remove_container_on_failure,
    manifest_file,
):
    """Start the OpenShift master container and wait until it is ready."""
    config_values = obj["config"]
    logger = logging.getLogger("clusterup")

    readiness_timeout = float(
        _resolve_option(readiness_timeout, config_values, "readiness_timeout", default=300.0)
    )
    policy = replace(
        StartPolicy(),
        readiness_timeout=readiness_timeout or None,
        server_up_attempts=int(
            _resolve_option(server_up_attempts, config_values, "server_up_attempts", default=35)
        ),
        remove_container_on_failure=bool(
            _resolve_option(
                remove_container_on_failure,
                config_values,
                "remove_container_on_failure",
                default=False,
            )
        ),
    )

    manifest_file = _resolve_option(manifest_file, config_values, "manifest_file")
    console_observer = ConsoleObserver(logger=logger, console=console)
    manifest_observer = ManifestObserver(manifest_file, logger=logger) if manifest_file else None

    orchestrator = StartupOrchestrator(
        image=obj["image"],
        container_name=obj["container_name"],
        public_hostname=_resolve_option(public_hostname, config_values, "public_hostname"),
        routing_suffix=_resolve_option(routing_suffix, config_values, "routing_suffix"),
        policy=policy,
        observer=CompositeObserver(console_observer, manifest_observer),
    )

    config_dir = None
    status = "failed"
    error = None
    try:
        orchestrator.validate_environment()
        server_ip = _resolve_option(server_ip, config_values, "server_ip")
        if not server_ip:
            console.print("[blue]Determining server IP...[/blue]")
            server_ip = orchestrator.server_ip()
            if not server_ip:
                raise ClusterUpError("Could not determine the server IP. Pass --server-ip explicitly.")

        options = StartOptions(
            server_ip=server_ip,
            image_tag=str(_resolve_option(image_tag, config_values, "image_tag", default=DEFAULT_IMAGE_TAG)),
            host_config_dir=_resolve_option(
                host_config_dir, config_values, "host_config_dir", default=DEFAULT_HOST_CONFIG_DIR
            ),
            host_volumes_dir=_resolve_option(
                host_volumes_dir, config_values, "host_volumes_dir", default=DEFAULT_HOST_VOLUMES_DIR
            ),
            host_data_dir=_resolve_option(host_data_dir, config_values, "host_data_dir"),
            use_existing_config=bool(
                _resolve_option(use_existing_config, config_values, "use_existing_config", default=False)
            ),
            use_shared_volume=bool(
                _resolve_option(use_shared_volume, config_values, "use_shared_volume", default=False)
            ),
            environment=_normalize_environment(environment, config_values.get("environment")),
            log_level=int(_resolve_option(log_level, config_values, "log_level", default=0)),
        )
        if manifest_observer:
            manifest_observer.start_run(
                {
                    "container_name": orchestrator.container_name,
                    "image": orchestrator.image,
                    "options": asdict(options),
                }
            )

        if _resolve_option(check_ports, config_values, "check_ports", default=True):
            orchestrator.test_ports()

        config_dir = orchestrator.start(options)
        status = "success"
    except KeyboardInterrupt:
        console.print("[bold red]Operation cancelled by user.[/bold red]")
        logger.info("Operation cancelled by user")
        status = "aborted"
        error = "Operation cancelled by user."
    except ClusterUpError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        logger.error(str(exc))
        error = str(exc)
    finally:
        if manifest_observer:
            manifest_observer.finalize(status, config_dir=config_dir, error=error)

    if status != "success":
        raise SystemExit(1)

    console.print(f"OpenShift master: [bold]{orchestrator.master_url(options.server_ip)}[/bold]")
    console.print(f"Local configuration copied to: {config_dir}")


@main.command("check-ports")
@click.pass_obj
def check_ports_command(obj):
    """Fail if any port required by OpenShift is in use on the Docker host."""
    orchestrator = StartupOrchestrator(image=obj["image"], container_name=obj["container_name"])
    try:
        orchestrator.test_ports()
    except ClusterUpError as exc:
        raise click.ClickException(str(exc)) from exc
    console.print("[green]All required ports are available.[/green]")


@main.command("server-ip")
@click.pass_obj
def server_ip_command(obj):
    """Print the IP the OpenShift master would advertise."""
    orchestrator = StartupOrchestrator(image=obj["image"], container_name=obj["container_name"])
    try:
        click.echo(orchestrator.server_ip())
    except ClusterUpError as exc:
        raise click.ClickException(str(exc)) from exc


if __name__ == "__main__":
    main()

"""Actionable error catalog for clusterup."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "failed_to_start": {
        "what": "Could not start OpenShift container '{container_name}'.",
        "next": "Run `docker logs {container_name}` to see why the daemon exited.",
    },
    "timed_out_waiting_for_start": {
        "what": "Could not start OpenShift container '{container_name}'. The API server did not start listening in time.",
        "next": "Inspect `docker logs {container_name}` and check that {address} is reachable from this machine.",
    },
    "port_conflict": {
        "what": "Required ports are already in use: {ports}.",
        "next": "Stop the processes bound to those ports on the Docker host, then retry.",
    },
    "config_generation_failed": {
        "what": "Could not create the OpenShift configuration in {host_config_dir}.",
        "next": "Check that the Docker host can run privileged containers and that the directory is writable.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"

"""Configuration loader for clusterup."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from clusterup.errors import ClusterUpError


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults."""

    SUPPORTED_KEYS = {
        "server_ip",
        "image",
        "image_tag",
        "container_name",
        "public_hostname",
        "routing_suffix",
        "host_config_dir",
        "host_volumes_dir",
        "host_data_dir",
        "use_existing_config",
        "use_shared_volume",
        "environment",
        "log_level",
        "verbose",
        "log_file",
        "check_ports",
        "readiness_timeout",
        "server_up_attempts",
        "remove_container_on_failure",
        "manifest_file",
    }

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise ClusterUpError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise ClusterUpError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise ClusterUpError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise ClusterUpError(f"Unknown configuration keys: {unknown_list}")

        environment = parsed.get("environment")
        if environment is not None and not isinstance(environment, (list, dict)):
            raise ClusterUpError("'environment' must be a list of KEY=VALUE strings or a mapping.")

        return parsed

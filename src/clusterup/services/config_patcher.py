"""Routing subdomain patching for master-config.yaml."""

import posixpath
from typing import Optional

import yaml

from clusterup.constants import MASTER_CONFIG_FILE, MASTER_DIR_NAME, WILDCARD_DNS_SUFFIX
from clusterup.errors import ConfigUpdateError


class ConfigPatcher:
    """Rewrites routingConfig.subdomain and pushes the file back to the host."""

    def __init__(
        self,
        stager,
        filesystem_service,
        logger,
        routing_suffix: Optional[str] = None,
        wildcard_dns_suffix: str = WILDCARD_DNS_SUFFIX,
    ):
        self.stager = stager
        self.filesystem_service = filesystem_service
        self.logger = logger
        self.routing_suffix = routing_suffix
        self.wildcard_dns_suffix = wildcard_dns_suffix

    def routing_subdomain(self, server_ip: str) -> str:
        if self.routing_suffix:
            return self.routing_suffix
        return f"{server_ip}.{self.wildcard_dns_suffix}"

    def patch(self, staged_config, host_dir: str, server_ip: str) -> str:
        master_config = staged_config.file_path(MASTER_DIR_NAME, MASTER_CONFIG_FILE)
        self.logger.info("Reading master config from %s", master_config)

        try:
            with open(master_config, "r", encoding="utf-8") as file_obj:
                config = yaml.safe_load(file_obj)
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigUpdateError(f"Could not read master config {master_config}: {exc}") from exc

        if not isinstance(config, dict):
            raise ConfigUpdateError(f"Master config {master_config} must contain a YAML mapping.")

        subdomain = self.routing_subdomain(server_ip)
        routing = config.get("routingConfig")
        if not isinstance(routing, dict):
            routing = {}
            config["routingConfig"] = routing
        routing["subdomain"] = subdomain

        try:
            content = yaml.safe_dump(config, default_flow_style=False, sort_keys=False)
            self.filesystem_service.write_text(master_config, content)
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigUpdateError(f"Could not write master config {master_config}: {exc}") from exc

        self.stager.commit(master_config, host_dir, posixpath.join(MASTER_DIR_NAME, MASTER_CONFIG_FILE))
        self.logger.info("Routing subdomain set to %s", subdomain)
        return subdomain

"""Staging of the control plane configuration between host and local disk."""

import os
import tempfile

from clusterup.errors import ClusterUpError, ConfigUpdateError, StageError


class StagedConfig:
    """Local copy of the configuration tree owned by one bring-up attempt.

    Used as a context manager: the directory is removed on exit unless
    `handoff()` transferred ownership to the caller.
    """

    def __init__(self, path: str, filesystem_service):
        self.path = path
        self.filesystem_service = filesystem_service
        self._owned = True

    def file_path(self, *parts: str) -> str:
        return os.path.join(self.path, *parts)

    def contains(self, *parts: str) -> bool:
        return os.path.isfile(self.file_path(*parts))

    def handoff(self) -> str:
        self._owned = False
        return self.path

    def release(self):
        if self._owned:
            self.filesystem_service.cleanup_dir(self.path)
            self._owned = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False


class ConfigStager:
    """Copies the host configuration directory into a temporary local one."""

    TEMP_PREFIX = "clusterup-config-"

    def __init__(self, host_helper, filesystem_service, logger):
        self.host_helper = host_helper
        self.filesystem_service = filesystem_service
        self.logger = logger

    def stage(self, host_dir: str) -> StagedConfig:
        try:
            temp_dir = tempfile.mkdtemp(prefix=self.TEMP_PREFIX)
        except OSError as exc:
            raise StageError(f"Could not create a temporary directory for {host_dir}: {exc}") from exc

        self.logger.info("Copying from host directory %s to local directory %s", host_dir, temp_dir)
        try:
            self.host_helper.copy_from_host(host_dir, temp_dir)
        except ClusterUpError as exc:
            self.filesystem_service.cleanup_dir(temp_dir)
            raise StageError(f"Could not copy configuration from host directory {host_dir}: {exc}") from exc

        return StagedConfig(temp_dir, self.filesystem_service)

    def commit(self, local_file: str, host_dir: str, relative_path: str):
        try:
            self.host_helper.copy_file_to_host(local_file, host_dir, relative_path)
        except ClusterUpError as exc:
            raise ConfigUpdateError(
                f"Could not copy {relative_path} back to host directory {host_dir}: {exc}"
            ) from exc

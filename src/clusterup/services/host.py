"""Access to the Docker host filesystem and identity."""

import posixpath
import uuid

from clusterup.errors import ClusterUpError
from clusterup.models import ContainerSpec


class HostHelper:
    """Copies files between the Docker host and the local filesystem.

    The Docker daemon may live on another machine, so host paths are reached
    through a short-lived helper container that bind-mounts the directory and
    `docker cp`.
    """

    MOUNT_POINT = "/var/lib/clusterup/hostdir"

    def __init__(self, runtime, image: str, logger):
        self.runtime = runtime
        self.image = image
        self.logger = logger

    def hostname(self) -> str:
        spec = ContainerSpec(
            image=self.image,
            entrypoint="hostname",
            host_network=True,
            discard=True,
        )
        name = self.runtime.output(spec).strip()
        if not name:
            raise ClusterUpError("Docker host returned an empty hostname")
        return name

    def copy_from_host(self, host_dir: str, local_dir: str):
        self.logger.debug("Copying host directory %s to %s", host_dir, local_dir)
        container = self._create_helper(host_dir)
        try:
            self.runtime.copy_from_container(container, f"{self.MOUNT_POINT}/.", local_dir)
        finally:
            self._remove_helper(container)

    def copy_file_to_host(self, local_file: str, host_dir: str, relative_path: str):
        destination = posixpath.join(self.MOUNT_POINT, relative_path)
        self.logger.debug("Copying %s to host %s", local_file, posixpath.join(host_dir, relative_path))
        container = self._create_helper(host_dir)
        try:
            self.runtime.copy_to_container(local_file, container, destination)
        finally:
            self._remove_helper(container)

    def _create_helper(self, host_dir: str) -> str:
        spec = ContainerSpec(
            image=self.image,
            name=f"clusterup-copy-{uuid.uuid4().hex[:10]}",
            entrypoint="/bin/true",
            binds=(f"{host_dir}:{self.MOUNT_POINT}:z",),
        )
        return self.runtime.create(spec)

    def _remove_helper(self, container: str):
        try:
            self.runtime.remove_container(container)
        except ClusterUpError as exc:
            self.logger.warning("Could not remove helper container %s: %s", container, exc)

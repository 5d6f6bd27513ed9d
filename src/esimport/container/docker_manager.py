"""
Docker container management for the local Elasticsearch instance.
"""
import logging
import subprocess
import time
from typing import List, Optional

from esimport.core.config import ContainerConfig
from esimport.core.exceptions import ContainerError

logger = logging.getLogger(__name__)


class DockerManager:
    """Starts a fresh Elasticsearch container, tearing down any previous one."""

    def __init__(self, config: ContainerConfig, port: int, docker: str = "docker"):
        """Initialize the manager.

        Args:
            config: Container configuration (image, name, startup delay)
            port: Port published on the host and inside the container
            docker: Container runtime executable
        """
        self.image = config.image
        self.name = config.name
        self.startup_delay = config.startup_delay
        self.port = port
        self.docker = docker

    def _run(self, *args: str, timeout: Optional[int] = 120) -> subprocess.CompletedProcess:
        cmd = [self.docker, *args]
        logger.debug(" ".join(cmd))
        return subprocess.run(cmd, capture_output=True, text=True, check=True, timeout=timeout)

    def list_containers(self) -> List[str]:
        """Names of all containers, running or not."""
        try:
            result = self._run("ps", "--all", "--format", "{{.Names}}")
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
            raise ContainerError(f"Could not list docker containers: {_describe(e)}") from e
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def exists(self) -> bool:
        return self.name in self.list_containers()

    def remove(self) -> None:
        """Stop and remove the container. Failures are logged and ignored."""
        for action in ("stop", "rm"):
            try:
                self._run(action, self.name)
            except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
                logger.warning(f"docker {action} {self.name} failed: {_describe(e)}")
            else:
                logger.debug(f"docker container {self.name} {'stopped' if action == 'stop' else 'removed'}")

    def start(self) -> str:
        """Run a detached container and return its id."""
        logger.info(f"Starting docker container: {self.name}")
        try:
            result = self._run(
                "run", "--detach",
                "--name", self.name,
                "--publish", f"{self.port}:{self.port}",
                "--env", "discovery.type=single-node",
                self.image,
                timeout=None,
            )
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
            raise ContainerError(
                f"Could not restart docker '{self.name}' based on settings ({_describe(e)})"
            ) from e
        return result.stdout.strip()

    def restart(self) -> str:
        """Replace any container with the configured name by a fresh one.

        Returns:
            The id of the new container.
        """
        logger.debug(f"Checking docker {self.name}")
        if self.exists():
            logger.debug(f"docker container {self.name} exists")
            self.remove()
        container_id = self.start()
        self.wait()
        return container_id

    def wait(self) -> None:
        logger.debug(f"Waiting {self.startup_delay:g} seconds for Elasticsearch to be up")
        time.sleep(self.startup_delay)


def _describe(error: Exception) -> str:
    if isinstance(error, subprocess.CalledProcessError):
        output = (error.stderr or error.stdout or "").strip()
        return output or f"exit status {error.returncode}"
    return str(error)

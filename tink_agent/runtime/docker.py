"""
Docker Runtime Executor
Runs an action as a privileged container through the Docker Engine API.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import aiodocker
import structlog
from aiodocker.exceptions import DockerError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from tink_agent.domain.entities.action import Action
from tink_agent.errors import (
    ActionExecutionError,
    BootstrapError,
    CleanupError,
    ImagePullError,
)
from tink_agent.runtime.containers import container_name, flatten_env, with_default_tag

logger = structlog.get_logger(__name__)

# Exit code used when the Docker client cannot be created
DOCKER_CLIENT_ERROR_CODE = 12


async def new_docker_client(socket_path: Optional[str] = None) -> aiodocker.Docker:
    """
    Create a Docker client and check the daemon answers.

    Raises:
        BootstrapError: If the daemon is not reachable
    """
    url = f"unix://{socket_path}" if socket_path else None
    client = aiodocker.Docker(url=url)
    try:
        version = await client.version()
    except Exception as e:
        await client.close()
        raise BootstrapError(
            f"unable to create Docker client: {e}",
            exit_code=DOCKER_CLIENT_ERROR_CODE,
        ) from e
    logger.info("docker_api_available", version=version.get("Version"))
    return client


def registry_auth(
    username: Optional[str],
    password: Optional[str],
    server: Optional[str] = None,
) -> Optional[dict]:
    """Build pull credentials, or None when no user is configured."""
    if not username:
        return None
    auth = {"username": username, "password": password or ""}
    if server:
        auth["serveraddress"] = server
    return auth


class DockerExecutor:
    """
    Engine-based runtime executor.

    One aiodocker client is shared across actions. Every container this
    executor creates is force-removed when ``execute`` returns, whatever
    the outcome.
    """

    def __init__(
        self,
        client: aiodocker.Docker,
        registry_auth: Optional[dict] = None,
        pull_attempts: int = 5,
        pull_backoff: float = 1.0,
        stop_timeout: int = 5,
        cleanup_timeout: float = 10.0,
    ):
        self._client = client
        self._registry_auth = registry_auth
        self.pull_attempts = pull_attempts
        self.pull_backoff = pull_backoff
        self.stop_timeout = stop_timeout
        self.cleanup_timeout = cleanup_timeout

    async def execute(self, action: Action) -> None:
        """
        Pull, create, start and wait for the action's container.

        Raises:
            ImagePullError: If the image cannot be pulled and is not present
            ActionExecutionError: If the container cannot be created or
                started, or exits non-zero
            asyncio.CancelledError: If cancelled; the container is stopped
                gracefully first
        """
        await self.pull_image(action)

        name = container_name(action.id, action.name)
        async with self._container(action, name) as container:
            try:
                await container.start()
            except DockerError as e:
                raise ActionExecutionError(
                    "start container", action.id, e.message, action.name
                ) from e

            # "not-running" also returns the exit status of a container that
            # has already exited, so a fast exit cannot be missed.
            try:
                result = await container.wait(condition="not-running")
            except asyncio.CancelledError:
                await self._stop(container, name)
                raise
            except DockerError as e:
                raise ActionExecutionError(
                    "wait for container", action.id, e.message, action.name
                ) from e

        status_code = result.get("StatusCode")
        if status_code != 0:
            raise ActionExecutionError(
                "run container",
                action.id,
                f"got non 0 exit status {status_code}, see the logs for more information",
                action.name,
            )
        logger.info("container_exited", action_id=action.id, container=name)

    def container_config(self, action: Action) -> dict:
        """
        Build the create-container request body.

        The action's cmd is the container entrypoint and its args are the
        container command.
        """
        host_config = {
            "Binds": list(action.volumes),
            "Privileged": True,
        }
        if action.namespaces.pid:
            host_config["PidMode"] = action.namespaces.pid
        if action.namespaces.network:
            host_config["NetworkMode"] = action.namespaces.network

        config = {
            "Image": action.image,
            "Env": flatten_env(action.env),
            "HostConfig": host_config,
        }
        if action.cmd:
            config["Entrypoint"] = [action.cmd]
        if action.args:
            config["Cmd"] = list(action.args)
        return config

    async def pull_image(self, action: Action) -> None:
        """
        Pull the action image with bounded backoff retries.

        A failed pull is tolerated when the image is already present, as on
        hosts with embedded images and no registry access.

        Raises:
            ImagePullError: When all attempts fail
        """
        image = with_default_tag(action.image)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.pull_attempts),
                wait=wait_exponential(multiplier=self.pull_backoff, max=30),
                retry=retry_if_exception_type(DockerError),
                reraise=True,
            ):
                with attempt:
                    await self._pull_once(image)
        except DockerError as e:
            raise ImagePullError("pull image", action.id, f"{image}: {e.message}", action.name) from e

    async def _pull_once(self, image: str) -> None:
        try:
            progress = await self._client.images.pull(image, auth=self._registry_auth)
            # Pull failures after the stream started only show up in the
            # progress messages.
            errors = [p["error"] for p in progress or [] if isinstance(p, dict) and p.get("error")]
            if errors:
                raise DockerError(500, {"message": errors[-1]})
        except DockerError as e:
            if await self._image_present(image):
                logger.info("image_pull_failed_using_local", image=image, error=e.message)
                return
            logger.info("image_pull_failed", image=image, error=e.message)
            raise
        logger.info("image_pulled", image=image)

    async def _image_present(self, image: str) -> bool:
        try:
            await self._client.images.inspect(image)
        except DockerError:
            return False
        return True

    @asynccontextmanager
    async def _container(self, action: Action, name: str):
        try:
            container = await self._client.containers.create(
                config=self.container_config(action),
                name=name,
            )
        except DockerError as e:
            raise ActionExecutionError("create container", action.id, e.message, action.name) from e

        logger.info("container_created", action_id=action.id, container=name)
        try:
            yield container
        finally:
            # Removal runs as its own task so a cancelled execute cannot
            # interrupt it.
            try:
                await asyncio.shield(self._remove(container, name))
            except CleanupError as e:
                logger.warning("container_remove_failed", container=name, error=str(e))

    async def _stop(self, container, name: str) -> None:
        try:
            await asyncio.wait_for(
                container.stop(t=self.stop_timeout),
                timeout=self.stop_timeout + self.cleanup_timeout,
            )
            logger.info("container_stopped", container=name)
        except Exception as e:
            logger.warning("container_stop_failed", container=name, error=str(e))

    async def _remove(self, container, name: str) -> None:
        """
        Force-remove a container.

        Raises:
            CleanupError: If the removal fails or times out
        """
        try:
            await asyncio.wait_for(container.delete(force=True), timeout=self.cleanup_timeout)
        except Exception as e:
            raise CleanupError(f"remove container {name}: {e}") from e
        logger.info("container_removed", container=name)

"""
containerd Runtime Executor
Runs an action as a privileged container in a containerd namespace, driven
through containerd's ``ctr`` client.
"""

import asyncio
import shutil
from contextlib import asynccontextmanager
from typing import Optional

import structlog

from tink_agent.domain.entities.action import Action
from tink_agent.errors import (
    ActionExecutionError,
    BootstrapError,
    CleanupError,
    ImagePullError,
)
from tink_agent.runtime.containers import (
    DEFAULT_REGISTRY,
    container_name,
    flatten_env,
    parse_volume,
    resolve_image,
)

logger = structlog.get_logger(__name__)


class CtrError(Exception):
    """A ``ctr`` invocation exited non-zero."""

    def __init__(self, args: tuple, returncode: int, stderr: str):
        self.command_args = args
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"ctr {' '.join(args)}: exit {returncode}: {stderr}")

    @property
    def not_found(self) -> bool:
        return "not found" in self.stderr.lower()


class CtrClient:
    """
    Handle on one containerd daemon and namespace.

    Args:
        address: containerd socket path
        namespace: containerd namespace all resources live in
        binary: ``ctr`` executable
    """

    def __init__(
        self,
        address: str = "/run/containerd/containerd.sock",
        namespace: str = "tinkerbell",
        binary: str = "ctr",
    ):
        self.address = address
        self.namespace = namespace
        self.binary = binary

    def command(self, *args: str) -> list[str]:
        return [self.binary, "--address", self.address, "--namespace", self.namespace, *args]

    async def run(self, *args: str, timeout: Optional[float] = None) -> str:
        """
        Run a ctr command and capture its output.

        Raises:
            CtrError: On a non-zero exit
        """
        proc = await asyncio.create_subprocess_exec(
            *self.command(*args),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
        except BaseException:
            await _kill(proc)
            raise

        if proc.returncode != 0:
            raise CtrError(args, proc.returncode, stderr.decode(errors="replace").strip())
        return stdout.decode(errors="replace")

    async def attach(self, *args: str) -> int:
        """Run a ctr command with inherited stdio and return its exit code."""
        proc = await asyncio.create_subprocess_exec(*self.command(*args))
        try:
            return await proc.wait()
        except BaseException:
            await _kill(proc)
            raise


async def _kill(proc) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()


async def new_ctr_client(
    address: str,
    namespace: str = "tinkerbell",
    binary: str = "ctr",
) -> CtrClient:
    """
    Create a ctr client and check the daemon answers.

    Raises:
        BootstrapError: If ctr is missing or containerd is not reachable
    """
    if shutil.which(binary) is None:
        raise BootstrapError(f"containerd client binary {binary!r} not found")

    client = CtrClient(address=address, namespace=namespace, binary=binary)
    try:
        await client.run("version", timeout=10)
    except (CtrError, OSError, asyncio.TimeoutError) as e:
        raise BootstrapError(f"unable to reach containerd at {address}: {e}") from e
    logger.info("containerd_available", address=address, namespace=namespace)
    return client


class ContainerdExecutor:
    """
    Daemon-based runtime executor.

    The container's snapshot shares the container's name. The task is
    deleted first, then the container together with its snapshot; both are
    attempted on every exit path and failures are only logged.
    """

    def __init__(
        self,
        client: CtrClient,
        registry: str = DEFAULT_REGISTRY,
        registry_user: Optional[str] = None,
        registry_pass: Optional[str] = None,
        cleanup_timeout: float = 10.0,
    ):
        self._client = client
        self.registry = registry or DEFAULT_REGISTRY
        self._registry_user = registry_user
        self._registry_pass = registry_pass
        self.cleanup_timeout = cleanup_timeout

    async def execute(self, action: Action) -> None:
        """
        Run the action's task to completion.

        Raises:
            ImagePullError: If the image is absent and cannot be pulled
            ActionExecutionError: If the container cannot be created or the
                task exits non-zero
        """
        image = resolve_image(action.image, self.registry)
        await self.ensure_image(action, image)

        name = container_name(action.id, action.name)
        async with self._container(action, image, name):
            # ctr waits on the task before starting it and passes the
            # workload's exit status through as its own.
            exit_code = await self._client.attach("tasks", "start", name)

        if exit_code != 0:
            raise ActionExecutionError(
                "run task",
                action.id,
                f"task exited with non-zero code: {exit_code}",
                action.name,
            )
        logger.info("task_exited", action_id=action.id, container=name)

    async def ensure_image(self, action: Action, image: str) -> None:
        """Pull the image into the namespace unless it is already there."""
        try:
            listed = await self._client.run("images", "ls", "-q", f"name=={image}")
        except CtrError as e:
            logger.info("image_lookup_failed", image=image, error=str(e))
            listed = ""
        if listed.strip():
            logger.info("image_present", image=image)
            return

        args = ["images", "pull"]
        if self._registry_user:
            args += ["--user", f"{self._registry_user}:{self._registry_pass or ''}"]
        args.append(image)
        try:
            await self._client.run(*args)
        except CtrError as e:
            raise ImagePullError("pull image", action.id, str(e), action.name) from e
        logger.info("image_pulled", image=image)

    def create_args(self, action: Action, image: str, name: str) -> list[str]:
        """Build the ``ctr containers create`` arguments for an action."""
        args = ["containers", "create", "--privileged"]
        for entry in flatten_env(action.env):
            args += ["--env", entry]
        if action.namespaces.pid == "host":
            args += ["--with-ns", "pid:/proc/1/ns/pid"]
        for raw in action.volumes:
            mount = parse_volume(raw)
            if not mount.is_bind:
                logger.warning("named_volume_unsupported", volume=raw, action_id=action.id)
                continue
            mode = "ro" if mount.read_only else "rw"
            args += ["--mount", f"type=bind,src={mount.source},dst={mount.target},options=rbind:{mode}"]

        args += ["--", image, name]
        if action.cmd:
            args += [action.cmd, *action.args]
        elif action.args:
            args += list(action.args)
        return args

    @asynccontextmanager
    async def _container(self, action: Action, image: str, name: str):
        try:
            args = self.create_args(action, image, name)
            await self._client.run(*args)
        except (CtrError, ValueError) as e:
            raise ActionExecutionError("create container", action.id, str(e), action.name) from e

        logger.info("container_created", action_id=action.id, container=name)
        try:
            yield
        finally:
            try:
                await asyncio.shield(self._teardown(name))
            except CleanupError as e:
                logger.warning("container_teardown_failed", container=name, error=str(e))

    async def _teardown(self, name: str) -> None:
        """
        Delete the task, then the container and its snapshot.

        Both steps are attempted even if the first one fails.

        Raises:
            CleanupError: Listing every step that failed
        """
        failures = []
        try:
            await self._client.run("tasks", "delete", "--force", name, timeout=self.cleanup_timeout)
            logger.info("task_deleted", container=name)
        except CtrError as e:
            if e.not_found:
                logger.debug("task_already_gone", container=name)
            else:
                failures.append(f"delete task: {e}")
        except Exception as e:
            failures.append(f"delete task: {e}")

        try:
            # Removing the container also removes its snapshot.
            await self._client.run("containers", "delete", name, timeout=self.cleanup_timeout)
            logger.info("container_deleted", container=name)
        except Exception as e:
            failures.append(f"delete container: {e}")

        if failures:
            raise CleanupError(f"{name}: " + "; ".join(failures))

"""
gRPC Transport
Polls the control plane's WorkflowService for the next pending action of
this worker and reports action status back.
"""

import asyncio
import ssl
from typing import Optional

import grpc
import structlog

from tink_agent.domain.entities.action import Action, Env, Namespaces
from tink_agent.domain.entities.event import Event, State
from tink_agent.errors import BootstrapError, TransportError
from tink_agent.transport.grpc.workflow import (
    WireState,
    WorkflowActionsRequest,
    WorkflowActionStatus,
    WorkflowContextRequest,
    WorkflowServiceStub,
)
from tink_agent.transport.handoff import Handoff

logger = structlog.get_logger(__name__)

_WIRE_STATES = {
    State.RUNNING: WireState.RUNNING,
    State.SUCCESS: WireState.SUCCESS,
    State.FAILURE: WireState.FAILED,
    State.TIMEOUT: WireState.TIMEOUT,
}


def new_channel(
    authority: str,
    tls_enabled: bool = False,
    tls_insecure: bool = False,
) -> grpc.aio.Channel:
    """
    Create the channel to the control plane.

    grpcio cannot skip certificate verification, so ``tls_insecure`` pins
    whatever certificate the server presents as the only trusted root.

    Raises:
        BootstrapError: If the server certificate cannot be fetched
    """
    if not tls_enabled:
        return grpc.aio.insecure_channel(authority)

    root_certificates = None
    if tls_insecure:
        host, _, port = authority.rpartition(":")
        try:
            pem = ssl.get_server_certificate((host, int(port)))
        except (OSError, ValueError) as e:
            raise BootstrapError(f"unable to fetch server certificate from {authority}: {e}") from e
        root_certificates = pem.encode()

    credentials = grpc.ssl_channel_credentials(root_certificates=root_certificates)
    return grpc.aio.secure_channel(authority, credentials)


def to_action(context, wire_action) -> Action:
    """
    Translate a wire action into a local Action.

    ``command[0]`` is the command and the rest its args; environment
    entries are ``K=V`` strings split on the first ``=``.
    """
    command = list(wire_action.command)
    env = []
    for entry in wire_action.environment:
        key, _, value = entry.partition("=")
        env.append(Env(key=key, value=value))

    return Action(
        id=context.workflow_id,
        task_name=context.current_task,
        name=wire_action.name,
        image=wire_action.image,
        cmd=command[0] if command else "",
        args=tuple(command[1:]),
        env=tuple(env),
        volumes=tuple(wire_action.volumes),
        namespaces=Namespaces(pid=wire_action.pid),
        timeout_seconds=int(wire_action.timeout),
    )


class GRPCTransport:
    """
    Polling-RPC transport.

    The ingestion task repeatedly opens a workflow context stream for this
    worker. When the context names a pending action for us, the action is
    fetched, translated and handed to the loop. The last delivered action
    is remembered so a server that has not advanced its pointer yet does
    not get the same action run twice.

    The dedup memo is only touched by the single ingestion task, so it
    needs no locking.
    """

    def __init__(
        self,
        stub: WorkflowServiceStub,
        worker_id: str,
        retry_interval: float = 5.0,
        report_delay: float = 2.0,
        handoff: Optional[Handoff] = None,
    ):
        self._stub = stub
        self.worker_id = worker_id
        self.retry_interval = retry_interval
        self.report_delay = report_delay
        self._handoff = handoff or Handoff()
        self._last_delivered: Optional[tuple] = None

    async def start(self) -> None:
        """Poll for actions until cancelled."""
        logger.info("grpc_transport_starting", worker_id=self.worker_id)
        while True:
            found = await self.poll()
            if found is None:
                await asyncio.sleep(self.retry_interval)
                continue

            key, action = found
            await self._handoff.put(action)
            self._last_delivered = key

    async def poll(self) -> Optional[tuple]:
        """
        Look once for a new pending action.

        Returns:
            ``(dedup key, Action)`` or None if there is nothing new to run
        """
        context = await self._fetch_context()
        if context is None:
            return None
        if (
            context.current_worker != self.worker_id
            or context.current_action_state != WireState.PENDING
        ):
            logger.debug(
                "workflow_context_skipped",
                workflow_id=context.workflow_id,
                current_worker=context.current_worker,
                state=context.current_action_state,
            )
            return None

        try:
            actions = await self._stub.GetWorkflowActions(
                WorkflowActionsRequest(workflow_id=context.workflow_id)
            )
        except grpc.RpcError as e:
            logger.info("workflow_actions_fetch_failed", workflow_id=context.workflow_id, error=str(e))
            return None

        index = context.current_action_index
        if not 0 <= index < len(actions.action_list):
            logger.info(
                "workflow_action_index_out_of_range",
                workflow_id=context.workflow_id,
                index=index,
                actions=len(actions.action_list),
            )
            return None

        wire_action = actions.action_list[index]
        key = (context.workflow_id, index, wire_action)
        if key == self._last_delivered:
            logger.debug("workflow_action_already_delivered", workflow_id=context.workflow_id, index=index)
            return None

        return key, to_action(context, wire_action)

    async def _fetch_context(self):
        call = self._stub.GetWorkflowContexts(WorkflowContextRequest(worker_id=self.worker_id))
        try:
            context = await call.read()
        except grpc.RpcError as e:
            logger.info("workflow_context_stream_failed", error=str(e))
            return None
        finally:
            call.cancel()

        if context is grpc.aio.EOF:
            return None
        return context

    async def read(self) -> Action:
        return await self._handoff.get()

    async def write(self, event: Event) -> None:
        """
        Report an action status.

        Raises:
            TransportError: If the status report fails
        """
        status = WorkflowActionStatus(
            workflow_id=event.action.id,
            task_name=event.action.task_name,
            action_name=event.action.name,
            action_status=_WIRE_STATES[event.state],
            seconds=0,
            message=event.message,
            worker_id=self.worker_id,
        )
        try:
            await self._stub.ReportActionStatus(status)
        except grpc.RpcError as e:
            raise TransportError(
                f"error reporting action status {event.state.value} "
                f"for {event.action.id}/{event.action.name}: {e}"
            ) from e

        # The control plane propagates status asynchronously; give it time
        # before the next context poll sees this action.
        if self.report_delay > 0:
            await asyncio.sleep(self.report_delay)

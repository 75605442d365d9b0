"""Polling-RPC transport against the WorkflowService."""

from tink_agent.transport.grpc.transport import GRPCTransport, new_channel, to_action
from tink_agent.transport.grpc.workflow import WireState, WorkflowServiceStub

__all__ = [
    "GRPCTransport",
    "WireState",
    "WorkflowServiceStub",
    "new_channel",
    "to_action",
]

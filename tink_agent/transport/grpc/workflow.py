"""
Workflow Service Protocol
Protobuf messages and client stub for the control plane's WorkflowService.

The message classes are built from a descriptor assembled here, so the
agent needs no generated ``_pb2`` modules. Field numbers and names match
the server's ``workflow.proto``; wire compatibility depends only on those.
"""

import grpc
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

PACKAGE = "proto"
SERVICE = f"{PACKAGE}.WorkflowService"

_F = descriptor_pb2.FieldDescriptorProto

# message name -> [(field name, number, type, label, enum/message type)]
_MESSAGES = {
    "WorkflowContextRequest": [
        ("worker_id", 1, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
    ],
    "WorkflowContext": [
        ("workflow_id", 1, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
        ("current_worker", 2, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
        ("current_task", 3, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
        ("current_action", 4, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
        ("current_action_index", 5, _F.TYPE_INT64, _F.LABEL_OPTIONAL, None),
        ("current_action_state", 6, _F.TYPE_ENUM, _F.LABEL_OPTIONAL, "State"),
        ("total_number_of_actions", 7, _F.TYPE_INT64, _F.LABEL_OPTIONAL, None),
    ],
    "WorkflowActionsRequest": [
        ("workflow_id", 1, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
    ],
    "WorkflowAction": [
        ("task_name", 1, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
        ("name", 2, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
        ("image", 3, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
        ("timeout", 4, _F.TYPE_INT64, _F.LABEL_OPTIONAL, None),
        ("command", 5, _F.TYPE_STRING, _F.LABEL_REPEATED, None),
        ("on_timeout", 6, _F.TYPE_STRING, _F.LABEL_REPEATED, None),
        ("on_failure", 7, _F.TYPE_STRING, _F.LABEL_REPEATED, None),
        ("worker_id", 8, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
        ("volumes", 9, _F.TYPE_STRING, _F.LABEL_REPEATED, None),
        ("environment", 10, _F.TYPE_STRING, _F.LABEL_REPEATED, None),
        ("pid", 11, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
    ],
    "WorkflowActionList": [
        ("action_list", 1, _F.TYPE_MESSAGE, _F.LABEL_REPEATED, "WorkflowAction"),
    ],
    "WorkflowActionStatus": [
        ("workflow_id", 1, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
        ("task_name", 2, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
        ("action_name", 3, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
        ("action_status", 4, _F.TYPE_ENUM, _F.LABEL_OPTIONAL, "State"),
        ("seconds", 5, _F.TYPE_INT64, _F.LABEL_OPTIONAL, None),
        ("message", 6, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
        ("worker_id", 8, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
    ],
    "Empty": [],
}

_STATES = [
    ("STATE_PENDING", 0),
    ("STATE_RUNNING", 1),
    ("STATE_FAILED", 2),
    ("STATE_TIMEOUT", 3),
    ("STATE_SUCCESS", 4),
]


def _build_file() -> descriptor_pb2.FileDescriptorProto:
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="tink_agent/workflow.proto",
        package=PACKAGE,
        syntax="proto3",
    )

    enum = file_proto.enum_type.add(name="State")
    for name, number in _STATES:
        enum.value.add(name=name, number=number)

    for message_name, fields in _MESSAGES.items():
        message = file_proto.message_type.add(name=message_name)
        for name, number, field_type, label, type_name in fields:
            field = message.field.add(
                name=name,
                number=number,
                type=field_type,
                label=label,
            )
            if type_name:
                field.type_name = f".{PACKAGE}.{type_name}"

    return file_proto


_pool = descriptor_pool.DescriptorPool()
_pool.Add(_build_file())


def _message(name: str):
    return message_factory.GetMessageClass(_pool.FindMessageTypeByName(f"{PACKAGE}.{name}"))


WorkflowContextRequest = _message("WorkflowContextRequest")
WorkflowContext = _message("WorkflowContext")
WorkflowActionsRequest = _message("WorkflowActionsRequest")
WorkflowAction = _message("WorkflowAction")
WorkflowActionList = _message("WorkflowActionList")
WorkflowActionStatus = _message("WorkflowActionStatus")
Empty = _message("Empty")


class WireState:
    """Values of the ``State`` enum on the wire."""

    PENDING = 0
    RUNNING = 1
    FAILED = 2
    TIMEOUT = 3
    SUCCESS = 4


class WorkflowServiceStub:
    """Client stub for ``proto.WorkflowService``."""

    def __init__(self, channel: grpc.aio.Channel):
        self.GetWorkflowContexts = channel.unary_stream(
            f"/{SERVICE}/GetWorkflowContexts",
            request_serializer=WorkflowContextRequest.SerializeToString,
            response_deserializer=WorkflowContext.FromString,
        )
        self.GetWorkflowActions = channel.unary_unary(
            f"/{SERVICE}/GetWorkflowActions",
            request_serializer=WorkflowActionsRequest.SerializeToString,
            response_deserializer=WorkflowActionList.FromString,
        )
        self.ReportActionStatus = channel.unary_unary(
            f"/{SERVICE}/ReportActionStatus",
            request_serializer=WorkflowActionStatus.SerializeToString,
            response_deserializer=Empty.FromString,
        )

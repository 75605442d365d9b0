"""
Tink Agent
Main entry point for the agent.
"""

import argparse
import asyncio
import logging
import signal
import sys
from contextlib import AsyncExitStack
from typing import Optional

import structlog
from dotenv import load_dotenv

from tink_agent import __version__
from tink_agent.agents.loop import AgentLoop
from tink_agent.config import RuntimeType, Settings, TransportType, get_settings
from tink_agent.errors import BootstrapError
from tink_agent.runtime.containerd import ContainerdExecutor, new_ctr_client
from tink_agent.runtime.docker import DockerExecutor, new_docker_client, registry_auth
from tink_agent.transport.file import FileTransport
from tink_agent.transport.grpc import GRPCTransport, WorkflowServiceStub, new_channel
from tink_agent.transport.nats import NATSTransport

logger = structlog.get_logger(__name__)

NAME = "tink-agent"


def configure_logging(level: str = "info") -> None:
    """Configure structured JSON logging on stdout."""
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level, force=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def runtime_type(value: str) -> RuntimeType:
    """Parse a runtime name; anything unrecognised selects docker."""
    try:
        return RuntimeType(value.strip().lower())
    except ValueError:
        return RuntimeType.DOCKER


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    """
    Build the command line parser.

    Defaults come from the environment-backed settings, so flags only
    need to be passed to override them.
    """
    parser = argparse.ArgumentParser(
        prog=NAME,
        description="Tink Agent runs provisioning workflow actions.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  tink-agent --id machine1 grpc --grpc-server tink.local:42113
  tink-agent --runtime containerd file --workflow-path workflow.yaml
  tink-agent --id machine1 nats --nats-server 10.0.0.5:4222
        """,
    )
    parser.add_argument("--id", default=settings.agent.id, help="ID of the agent")
    parser.add_argument(
        "--log-level",
        default=settings.agent.log_level,
        help="Log level (default: %(default)s)",
    )
    parser.add_argument(
        "--runtime",
        type=runtime_type,
        default=settings.agent.runtime,
        help="Runtime, one of [docker, containerd] (default: docker)",
    )
    parser.add_argument("--registry-name", default=settings.registry.name, help="Preferred image registry")
    parser.add_argument("--registry-user", default=settings.registry.user, help="Registry user")
    parser.add_argument("--registry-pass", default=settings.registry.password, help="Registry password")
    parser.add_argument("--docker-socket", default=settings.docker.socket_path, help="Docker socket path")
    parser.add_argument(
        "--containerd-socket",
        default=settings.containerd.socket_path,
        help="containerd socket path",
    )
    parser.add_argument(
        "--containerd-namespace",
        default=settings.containerd.namespace,
        help="containerd namespace",
    )
    parser.add_argument("--ctr-path", default=settings.containerd.ctr_path, help="ctr executable")

    transport_defaults = {
        "grpc_server": settings.grpc.server,
        "grpc_tls": settings.grpc.tls,
        "grpc_insecure_tls": settings.grpc.tls_insecure,
        "grpc_retry_interval": settings.grpc.retry_interval,
        "grpc_report_delay": settings.grpc.report_delay,
        "workflow_path": str(settings.file.workflow_path),
        "abandon_on_failure": settings.file.abandon_on_failure,
        "nats_server": settings.nats.server,
        "nats_stream": settings.nats.stream,
        "nats_events": settings.nats.events_subject,
        "nats_actions": settings.nats.actions_subject,
    }
    parser.set_defaults(**transport_defaults)

    transports = parser.add_subparsers(dest="transport", metavar="{grpc,file,nats}")
    # Must follow add_subparsers, which otherwise resets the default to None.
    parser.set_defaults(transport=settings.agent.transport.value)

    grpc_parser = transports.add_parser("grpc", help="Run the agent using the gRPC transport")
    grpc_parser.add_argument("--grpc-server", help="gRPC server address:port")
    grpc_parser.add_argument("--grpc-tls", action=argparse.BooleanOptionalAction, help="Use TLS")
    grpc_parser.add_argument(
        "--grpc-insecure-tls",
        action=argparse.BooleanOptionalAction,
        help="Use TLS without verifying the server certificate",
    )
    grpc_parser.add_argument("--grpc-retry-interval", type=float, help="Seconds between polls")
    grpc_parser.add_argument("--grpc-report-delay", type=float, help="Seconds to wait after each report")

    file_parser = transports.add_parser("file", help="Run the agent from a local workflow file")
    file_parser.add_argument("--workflow-path", help="Workflow file path")
    file_parser.add_argument(
        "--abandon-on-failure",
        action=argparse.BooleanOptionalAction,
        help="Drop the rest of the batch after a failed action",
    )

    nats_parser = transports.add_parser("nats", help="Run the agent using the NATS transport")
    nats_parser.add_argument("--nats-server", help="NATS server address:port")
    nats_parser.add_argument("--nats-stream", help="NATS stream name")
    nats_parser.add_argument("--nats-events", help="NATS events subject")
    nats_parser.add_argument("--nats-actions", help="NATS actions subject")

    for subparser in (grpc_parser, file_parser, nats_parser):
        subparser.set_defaults(**transport_defaults)

    return parser


async def build_executor(args: argparse.Namespace, stack: AsyncExitStack):
    """
    Create the runtime executor.

    Raises:
        BootstrapError: If the runtime client cannot be created
    """
    if args.runtime == RuntimeType.CONTAINERD:
        client = await new_ctr_client(
            args.containerd_socket,
            namespace=args.containerd_namespace,
            binary=args.ctr_path,
        )
        logger.info("using_containerd_runtime", namespace=args.containerd_namespace)
        return ContainerdExecutor(
            client,
            registry=args.registry_name,
            registry_user=args.registry_user,
            registry_pass=args.registry_pass,
        )

    client = await new_docker_client(args.docker_socket)
    stack.push_async_callback(client.close)
    logger.info("using_docker_runtime", socket=args.docker_socket)
    return DockerExecutor(
        client,
        registry_auth=registry_auth(args.registry_user, args.registry_pass, args.registry_name),
    )


async def build_transport(args: argparse.Namespace, stack: AsyncExitStack):
    """
    Create the transport used as both reader and writer.

    Raises:
        BootstrapError: If required settings are missing or the connection
            cannot be set up
    """
    transport = TransportType(args.transport)

    if transport == TransportType.FILE:
        logger.info("using_file_transport", path=args.workflow_path)
        return FileTransport(args.workflow_path, abandon_on_failure=args.abandon_on_failure)

    if not args.id:
        raise BootstrapError(f"the {transport.value} transport requires an agent ID (--id)")

    if transport == TransportType.NATS:
        if not args.nats_server:
            raise BootstrapError("the nats transport requires a server (--nats-server)")
        logger.info("using_nats_transport", server=args.nats_server)
        return NATSTransport(
            server=args.nats_server,
            agent_id=args.id,
            stream_name=args.nats_stream,
            events_subject=args.nats_events,
            actions_subject=args.nats_actions,
        )

    if not args.grpc_server:
        raise BootstrapError("the grpc transport requires a server (--grpc-server)")
    channel = new_channel(args.grpc_server, args.grpc_tls, args.grpc_insecure_tls)
    stack.push_async_callback(channel.close)
    logger.info("using_grpc_transport", server=args.grpc_server, tls=args.grpc_tls)
    return GRPCTransport(
        WorkflowServiceStub(channel),
        worker_id=args.id,
        retry_interval=args.grpc_retry_interval,
        report_delay=args.grpc_report_delay,
    )


SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)


def install_signal_handlers(stop: asyncio.Event) -> None:
    """Set ``stop`` on SIGINT, SIGTERM or SIGHUP."""
    loop = asyncio.get_running_loop()

    def handle(sig: signal.Signals) -> None:
        logger.info("shutdown_signal_received", signal=sig.name)
        stop.set()

    for sig in SHUTDOWN_SIGNALS:
        loop.add_signal_handler(sig, handle, sig)


def remove_signal_handlers() -> None:
    loop = asyncio.get_running_loop()
    for sig in SHUTDOWN_SIGNALS:
        loop.remove_signal_handler(sig)


async def run_agent(args: argparse.Namespace) -> int:
    """
    Wire the transport, executor and loop together and run until a signal
    arrives or the transport fails.

    Returns:
        Process exit code
    """
    async with AsyncExitStack() as stack:
        try:
            executor = await build_executor(args, stack)
            transport = await build_transport(args, stack)
        except BootstrapError as e:
            logger.error("bootstrap_failed", error=str(e), exit_code=e.exit_code)
            return e.exit_code

        agent = AgentLoop(reader=transport, writer=transport, executor=executor)
        stop = asyncio.Event()
        install_signal_handlers(stop)

        ingest = asyncio.create_task(transport.start(), name="transport")
        loop_task = asyncio.create_task(agent.run(), name="agent-loop")
        tasks = {ingest, loop_task, asyncio.create_task(stop.wait(), name="shutdown")}

        exit_code = 0
        try:
            while not stop.is_set():
                done, tasks = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
                if ingest in done:
                    if ingest.exception() is not None:
                        logger.error("transport_failed", error=str(ingest.exception()))
                        exit_code = 1
                        break
                    # A static batch is fully delivered; the loop keeps
                    # running until shutdown.
                    logger.info("transport_ingestion_finished")
                if loop_task in done:
                    logger.error("agent_loop_exited", error=str(loop_task.exception()))
                    exit_code = 1
                    break
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            remove_signal_handlers()

        logger.info("tink_agent_stopped", exit_code=exit_code)
        return exit_code


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()
    args = build_parser(get_settings()).parse_args(argv)
    configure_logging(args.log_level)

    logger.info(
        "starting_tink_agent",
        version=__version__,
        agent_id=args.id,
        transport=args.transport,
        runtime=args.runtime.value,
    )
    return asyncio.run(run_agent(args))


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()

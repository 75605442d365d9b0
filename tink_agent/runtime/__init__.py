"""
Runtime Executors
Run one action's container to completion.
"""

from tink_agent.runtime.containerd import ContainerdExecutor, CtrClient, new_ctr_client
from tink_agent.runtime.docker import DockerExecutor, new_docker_client, registry_auth

__all__ = [
    "ContainerdExecutor",
    "CtrClient",
    "new_ctr_client",
    "DockerExecutor",
    "new_docker_client",
    "registry_auth",
]

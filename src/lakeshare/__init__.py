"""🔗 Lakeshare - Share data products across domains.

Quick Start:
    from lakeshare import LocalMesh, MeshConfig

    mesh = LocalMesh.from_config(MeshConfig.from_yaml("mesh.yaml"))
    mesh.register_all()                 # Registration handshakes
    executions = mesh.publish_all()     # Governance → intake → refresh

Against AWS:
    from lakeshare.services.aws import GlueCatalog, LakeFormationPermissions, EventBridgeChannel
    from lakeshare.workflows import GovernanceWorkflow
"""

from lakeshare.config import MeshConfig, Settings, WorkflowConfig, get_settings
from lakeshare.products import DataProductRegistration

__version__ = "0.1.0"


# Mesh runtime pulls in every workflow (lazy to keep `import lakeshare` light)
def __getattr__(name: str) -> object:
    if name == "LocalMesh":
        from lakeshare.mesh import LocalMesh

        return LocalMesh
    raise AttributeError(f"module 'lakeshare' has no attribute '{name}'")


__all__ = [
    "DataProductRegistration",
    "LocalMesh",
    "MeshConfig",
    "Settings",
    "WorkflowConfig",
    "get_settings",
    "__version__",
]

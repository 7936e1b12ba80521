"""🗂️ Workflows - The three sharing workflows of the mesh.

- Governance (control plane): register a product, grant access, notify the domain
- Intake (participant): accept the pending share, create resource-links
- Refresh (participant): crawl every newly linked table
"""

from .governance import (
    GOVERNANCE_WORKFLOW,
    GovernanceWorkflow,
    build_governance_workflow,
)
from .intake import (
    INTAKE_WORKFLOW,
    IntakeWorkflow,
    build_intake_workflow,
    first_share_accepted,
)
from .refresh import (
    READY_POLICIES,
    REFRESH_WORKFLOW,
    RefreshWorkflow,
    build_refresh_workflow,
    ready_predicate,
)

__all__ = [
    "GOVERNANCE_WORKFLOW",
    "GovernanceWorkflow",
    "build_governance_workflow",
    "INTAKE_WORKFLOW",
    "IntakeWorkflow",
    "build_intake_workflow",
    "first_share_accepted",
    "READY_POLICIES",
    "REFRESH_WORKFLOW",
    "RefreshWorkflow",
    "build_refresh_workflow",
    "ready_predicate",
]

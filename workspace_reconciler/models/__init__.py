"""Models module."""

from .database import AgentDB, Base, WorkspaceDB
from .schemas import (
    AgentConfig,
    AgentCreate,
    DeploymentCondition,
    DeploymentInfo,
    DeploymentSpecInfo,
    DeploymentStatusInfo,
    ErrorDetails,
    ReconcileParams,
    ReconcileRequest,
    ReconcilePayload,
    ReconcileResponse,
    Workspace,
    WorkspaceAgentInfo,
    WorkspaceCreate,
    WorkspaceRailsInfo,
    WorkspaceResponse,
    WorkspaceUpdate,
    WorkspaceVariable,
)
from .states import (
    ABNORMAL_ACTUAL_STATES,
    VALID_DESIRED_STATES,
    TerminationProgress,
    UpdateType,
    VariableType,
    WorkspaceState,
)

__all__ = [
    # Database models
    "Base",
    "AgentDB",
    "WorkspaceDB",
    # States
    "WorkspaceState",
    "UpdateType",
    "TerminationProgress",
    "VariableType",
    "VALID_DESIRED_STATES",
    "ABNORMAL_ACTUAL_STATES",
    # Schemas
    "DeploymentCondition",
    "DeploymentSpecInfo",
    "DeploymentStatusInfo",
    "DeploymentInfo",
    "ErrorDetails",
    "WorkspaceAgentInfo",
    "ReconcileParams",
    "ReconcileRequest",
    "WorkspaceRailsInfo",
    "ReconcilePayload",
    "ReconcileResponse",
    "AgentConfig",
    "AgentCreate",
    "WorkspaceVariable",
    "Workspace",
    "WorkspaceCreate",
    "WorkspaceUpdate",
    "WorkspaceResponse",
]

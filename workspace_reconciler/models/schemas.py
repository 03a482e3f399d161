"""Pydantic schemas for the Workspace Reconciler."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .states import TerminationProgress, UpdateType, VariableType, WorkspaceState


def _resource_version_to_str(value: Any) -> Any:
    # Kubernetes resourceVersions are opaque strings, agents sometimes send ints
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


# Kubernetes Deployment status reported by agents


class DeploymentCondition(BaseModel):
    """A single entry of ``status.conditions``."""

    type: Optional[str] = None
    reason: Optional[str] = None


class DeploymentSpecInfo(BaseModel):
    """The part of a Deployment ``spec`` the reconciler looks at."""

    replicas: Optional[int] = None


class DeploymentStatusInfo(BaseModel):
    """The part of a Deployment ``status`` the reconciler looks at."""

    model_config = ConfigDict(populate_by_name=True)

    available_replicas: Optional[int] = Field(None, alias="availableReplicas")
    unavailable_replicas: Optional[int] = Field(None, alias="unavailableReplicas")
    conditions: Optional[list[DeploymentCondition]] = None


class DeploymentInfo(BaseModel):
    """Latest Kubernetes Deployment snapshot for a workspace.

    Every field is optional: agents forward whatever they observed and any
    missing piece degrades the calculated state to ``Unknown``.
    """

    spec: Optional[DeploymentSpecInfo] = None
    status: Optional[DeploymentStatusInfo] = None


class ErrorDetails(BaseModel):
    """Error reported by an agent while applying or watching a workspace."""

    error_type: str
    error_message: Optional[str] = None
    error_details: Optional[str] = None


# Reconciliation request / response


class WorkspaceAgentInfo(BaseModel):
    """Per-workspace report sent by an agent."""

    name: str
    namespace: str
    actual_state: Optional[WorkspaceState] = None
    deployment_resource_version: Optional[str] = None
    latest_k8s_deployment_info: Optional[DeploymentInfo] = None
    termination_progress: Optional[TerminationProgress] = None
    error_details: Optional[ErrorDetails] = None

    @field_validator("deployment_resource_version", mode="before")
    @classmethod
    def normalize_resource_version(cls, v: Any) -> Any:
        """Accept integer resource versions."""
        return _resource_version_to_str(v)


class ReconcileParams(BaseModel):
    """Body of a reconciliation request."""

    update_type: UpdateType
    workspace_agent_infos: list[WorkspaceAgentInfo] = Field(default_factory=list)


class ReconcileRequest(BaseModel):
    """
    Envelope of a reconciliation request as received from an agent.

    Reports are kept raw and validated one at a time by the reconciler.
    """

    update_type: UpdateType
    workspace_agent_infos: list[Any] = Field(default_factory=list)


class WorkspaceRailsInfo(BaseModel):
    """Per-workspace entry returned to the agent."""

    name: str
    namespace: str
    desired_state: WorkspaceState
    actual_state: WorkspaceState
    deployment_resource_version: Optional[str] = None
    config_to_apply: Optional[str] = None


class ReconcilePayload(BaseModel):
    """Successful reconciliation payload."""

    workspace_rails_infos: list[WorkspaceRailsInfo] = Field(default_factory=list)


class ReconcileResponse(BaseModel):
    """Reconciliation result. A non-null ``message`` means the whole batch failed."""

    message: Optional[str] = None
    payload: Optional[ReconcilePayload] = None


# Agents and workspaces


class AgentConfig(BaseModel):
    """Cluster agent with its remote development configuration."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    name: str
    dns_zone: str
    network_policy_enabled: bool = True
    gitlab_workspaces_proxy_namespace: str = "gitlab-workspaces"


class AgentCreate(BaseModel):
    """Agent registration request. Unset fields fall back to the service defaults."""

    name: str = Field(..., min_length=1, max_length=255)
    dns_zone: Optional[str] = Field(None, max_length=255)
    network_policy_enabled: Optional[bool] = None
    gitlab_workspaces_proxy_namespace: Optional[str] = Field(None, max_length=63)


class WorkspaceVariable(BaseModel):
    """Variable injected into a workspace through a Secret."""

    key: str
    value: str
    variable_type: VariableType = VariableType.ENV_VAR


class Workspace(BaseModel):
    """Workspace record as seen by the reconciler.

    Instances are mutable: the reconciler updates them in place and hands
    them back to the repository with ``save``.
    """

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    name: str
    namespace: str
    agent_id: int
    user_id: int
    desired_state: WorkspaceState = WorkspaceState.RUNNING
    actual_state: WorkspaceState = WorkspaceState.CREATION_REQUESTED
    desired_state_updated_at: datetime
    responded_to_agent_at: Optional[datetime] = None
    deployment_resource_version: Optional[str] = None
    max_hours_before_termination: int = 24
    created_at: datetime
    force_include_all_resources: bool = True
    processed_devfile: str = ""
    variables: list[WorkspaceVariable] = Field(default_factory=list)
    lock_version: int = 0

    @field_validator("deployment_resource_version", mode="before")
    @classmethod
    def normalize_resource_version(cls, v: Any) -> Any:
        """Accept integer resource versions."""
        return _resource_version_to_str(v)

    @property
    def terminated(self) -> bool:
        """Whether both desired and actual state reached ``Terminated``."""
        return (
            self.desired_state == WorkspaceState.TERMINATED
            and self.actual_state == WorkspaceState.TERMINATED
        )


class WorkspaceCreate(BaseModel):
    """Schema for creating a workspace."""

    name: str = Field(..., min_length=1, max_length=64, pattern=r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
    namespace: Optional[str] = Field(None, max_length=63)
    user_id: int
    processed_devfile: str
    max_hours_before_termination: Optional[int] = Field(None, ge=1)
    variables: list[WorkspaceVariable] = Field(default_factory=list)


class WorkspaceUpdate(BaseModel):
    """Schema for changing the desired state of a workspace."""

    desired_state: WorkspaceState


class WorkspaceResponse(BaseModel):
    """Schema for workspace response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    namespace: str
    agent_id: int
    user_id: int
    desired_state: WorkspaceState
    actual_state: WorkspaceState
    desired_state_updated_at: datetime
    responded_to_agent_at: Optional[datetime]
    deployment_resource_version: Optional[str]
    max_hours_before_termination: int
    created_at: datetime

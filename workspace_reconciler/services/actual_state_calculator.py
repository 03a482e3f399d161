"""Actual state calculation from Kubernetes Deployment status."""

from typing import Any, Optional, Union

from ..models.schemas import DeploymentInfo, ErrorDetails
from ..models.states import TerminationProgress, WorkspaceState

# Deployment condition types
AVAILABLE = "Available"
PROGRESSING = "Progressing"

# Deployment condition reasons
MINIMUM_REPLICAS_AVAILABLE = "MinimumReplicasAvailable"
MINIMUM_REPLICAS_UNAVAILABLE = "MinimumReplicasUnavailable"
NEW_REPLICA_SET_AVAILABLE = "NewReplicaSetAvailable"
NEW_REPLICA_SET_CREATED = "NewReplicaSetCreated"
FOUND_NEW_REPLICA_SET = "FoundNewReplicaSet"
REPLICA_SET_UPDATED = "ReplicaSetUpdated"
PROGRESS_DEADLINE_EXCEEDED = "ProgressDeadlineExceeded"

IN_PROGRESS_REASONS = frozenset(
    {NEW_REPLICA_SET_CREATED, FOUND_NEW_REPLICA_SET, REPLICA_SET_UPDATED}
)

DeploymentInfoInput = Union[DeploymentInfo, dict[str, Any], None]
ErrorDetailsInput = Union[ErrorDetails, dict[str, Any], None]


class ActualStateCalculator:
    """
    Derives a workspace's actual state.

    Evaluation order, first match wins:
    - Error details reported by the agent, unless the workspace is still terminating
    - Termination progress reported by the agent
    - Deployment ``Progressing``/``Available`` conditions and ``spec.replicas``

    The calculator is pure: it holds no state and performs no I/O.
    """

    @classmethod
    def calculate_actual_state(
        cls,
        latest_k8s_deployment_info: DeploymentInfoInput,
        termination_progress: Optional[Union[TerminationProgress, str]] = None,
        error_details: ErrorDetailsInput = None,
    ) -> WorkspaceState:
        """
        Calculate the actual state of a workspace.

        Args:
            latest_k8s_deployment_info: Deployment snapshot, as a model or the raw agent mapping
            termination_progress: Termination progress reported by the agent
            error_details: Error reported by the agent

        Returns:
            The workspace state; never raises for well-typed input
        """
        if termination_progress is not None:
            termination_progress = TerminationProgress(termination_progress)

        if error_details and termination_progress != TerminationProgress.TERMINATING:
            return WorkspaceState.ERROR
        if termination_progress == TerminationProgress.TERMINATED:
            return WorkspaceState.TERMINATED
        if termination_progress == TerminationProgress.TERMINATING:
            return WorkspaceState.TERMINATING

        return cls.calculate_from_deployment(latest_k8s_deployment_info)

    @classmethod
    def calculate_from_deployment(cls, latest_k8s_deployment_info: DeploymentInfoInput) -> WorkspaceState:
        """
        Classify a Deployment snapshot using its replicas and conditions.

        Args:
            latest_k8s_deployment_info: Deployment snapshot

        Returns:
            The workspace state
        """
        if latest_k8s_deployment_info is None:
            return WorkspaceState.UNKNOWN

        if not isinstance(latest_k8s_deployment_info, DeploymentInfo):
            latest_k8s_deployment_info = DeploymentInfo.model_validate(latest_k8s_deployment_info)

        spec = latest_k8s_deployment_info.spec
        status = latest_k8s_deployment_info.status

        if spec is None or spec.replicas is None:
            return WorkspaceState.UNKNOWN
        if status is None or not status.conditions:
            return WorkspaceState.UNKNOWN

        reasons: dict[str, str] = {}
        for condition in status.conditions:
            if condition.type and condition.reason:
                reasons.setdefault(condition.type, condition.reason)

        if not reasons:
            return WorkspaceState.UNKNOWN

        replicas = spec.replicas
        if replicas > 1 or replicas < 0:
            return WorkspaceState.UNKNOWN

        return cls._classify(replicas, reasons.get(PROGRESSING), reasons.get(AVAILABLE))

    @staticmethod
    def _classify(replicas: int, progressing: Optional[str], available: Optional[str]) -> WorkspaceState:
        """Decision table over (replicas, Progressing reason, Available reason)."""
        if progressing == PROGRESS_DEADLINE_EXCEEDED:
            return WorkspaceState.FAILED

        if progressing == NEW_REPLICA_SET_AVAILABLE:
            if available == MINIMUM_REPLICAS_AVAILABLE:
                return WorkspaceState.RUNNING if replicas == 1 else WorkspaceState.STOPPED
            # TODO: a failed, scaled down workspace that is scaled up again reports Starting here
            #       until the Deployment hits its progress deadline; distinguish it via the previous
            #       actual state so it can be reported as Failed right away.
            if available == MINIMUM_REPLICAS_UNAVAILABLE and replicas == 1:
                return WorkspaceState.STARTING
            return WorkspaceState.UNKNOWN

        if progressing in IN_PROGRESS_REASONS:
            return WorkspaceState.STARTING if replicas == 1 else WorkspaceState.STOPPING

        return WorkspaceState.UNKNOWN


def calculate_actual_state(
    latest_k8s_deployment_info: DeploymentInfoInput,
    termination_progress: Optional[Union[TerminationProgress, str]] = None,
    error_details: ErrorDetailsInput = None,
) -> WorkspaceState:
    """Module level shortcut for ``ActualStateCalculator.calculate_actual_state``."""
    return ActualStateCalculator.calculate_actual_state(
        latest_k8s_deployment_info,
        termination_progress=termination_progress,
        error_details=error_details,
    )

"""Workspace Reconciler - reconciles desired and actual workspace state with agents."""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError

from ..models.schemas import (
    AgentConfig,
    ReconcileParams,
    ReconcilePayload,
    ReconcileRequest,
    ReconcileResponse,
    Workspace,
    WorkspaceAgentInfo,
    WorkspaceRailsInfo,
)
from ..models.states import ABNORMAL_ACTUAL_STATES, UpdateType, WorkspaceState
from .actual_state_calculator import ActualStateCalculator
from .desired_config_generator import DesiredConfigGenerator, serialize_config
from .workspace_repository import WorkspaceRepository

logger = logging.getLogger(__name__)

# Error types attached to structured log records
INVALID_AGENT_INFO = "invalid_agent_info"
ORPHANED_WORKSPACE = "orphaned_workspace"
ABNORMAL_ACTUAL_STATE = "abnormal_actual_state"
CONFIG_GENERATION_FAILED = "config_generation_failed"


class WorkspaceReconciler:
    """
    Reconciles workspaces with the agent managing them.

    For every reconciliation request:
    - Applies each agent report to its workspace (actual state, resource version)
    - Advances desired state (restart promotion, lifecycle cutoff)
    - Adds the workspaces the agent did not report but must hear about
    - Returns the configuration to apply for each workspace still converging

    Failures are isolated per workspace; ``reconcile`` never raises.
    """

    def __init__(
        self,
        repository: WorkspaceRepository,
        config_generator: Optional[DesiredConfigGenerator] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.repository = repository
        self.config_generator = config_generator or DesiredConfigGenerator()
        self.clock = clock

    async def reconcile(
        self,
        agent: AgentConfig,
        params: Union[ReconcileParams, dict[str, Any]],
    ) -> ReconcileResponse:
        """
        Process one reconciliation request from an agent.

        Args:
            agent: Agent sending the request
            params: Update type and per-workspace agent reports

        Returns:
            Response with one entry per processed workspace, or a message
            when the request as a whole could not be processed
        """
        try:
            if isinstance(params, ReconcileParams):
                update_type, reports = params.update_type, list(params.workspace_agent_infos)
            else:
                request = ReconcileRequest.model_validate(params)
                update_type, reports = request.update_type, request.workspace_agent_infos
        except ValidationError as e:
            logger.warning(f"Invalid reconciliation request from agent {agent.id}: {e}")
            return ReconcileResponse(message=f"Invalid reconciliation request: {e}")

        now = self.clock()
        rails_infos: list[WorkspaceRailsInfo] = []
        reported_ids: set[int] = set()

        logger.debug(
            f"Reconciling {len(reports)} workspace reports "
            f"for agent {agent.id} (update_type={update_type.value})"
        )

        try:
            for report in reports:
                agent_info = self._validate_agent_info(agent, report)
                if agent_info is None:
                    continue

                workspace = await self.repository.find_workspace(agent_info.name, agent_info.namespace, agent.id)

                if workspace is None:
                    logger.warning(
                        f"Received agent info for workspace {agent_info.namespace}/{agent_info.name} "
                        f"which does not exist",
                        extra={
                            "error_type": ORPHANED_WORKSPACE,
                            "agent_id": agent.id,
                            "workspace_name": agent_info.name,
                            "workspace_namespace": agent_info.namespace,
                        },
                    )
                    continue

                reported_ids.add(workspace.id)
                rails_info = await self._safe_process(agent, workspace, update_type, now, agent_info)
                if rails_info is not None:
                    rails_infos.append(rails_info)

            for workspace in await self._unreported_workspaces_to_return(agent, update_type, reported_ids, now):
                rails_info = await self._safe_process(agent, workspace, update_type, now)
                if rails_info is not None:
                    rails_infos.append(rails_info)
        except Exception as e:
            logger.error(f"Reconciliation failed for agent {agent.id}: {e}", exc_info=True)
            return ReconcileResponse(message=f"Reconciliation failed: {e}")

        return ReconcileResponse(payload=ReconcilePayload(workspace_rails_infos=rails_infos))

    @staticmethod
    def _validate_agent_info(agent: AgentConfig, report: Any) -> Optional[WorkspaceAgentInfo]:
        """Validate a single report; an invalid one is logged and skipped."""
        if isinstance(report, WorkspaceAgentInfo):
            return report

        try:
            return WorkspaceAgentInfo.model_validate(report)
        except ValidationError as e:
            logger.warning(
                f"Skipping invalid agent info from agent {agent.id}: {e}",
                extra={
                    "error_type": INVALID_AGENT_INFO,
                    "agent_id": agent.id,
                    "workspace_name": report.get("name") if isinstance(report, dict) else None,
                    "workspace_namespace": report.get("namespace") if isinstance(report, dict) else None,
                },
            )
            return None

    async def _safe_process(
        self,
        agent: AgentConfig,
        workspace: Workspace,
        update_type: UpdateType,
        now: datetime,
        agent_info: Optional[WorkspaceAgentInfo] = None,
    ) -> Optional[WorkspaceRailsInfo]:
        """Process a single workspace, dropping it from the response if anything goes wrong."""
        try:
            if agent_info is not None:
                self.apply_agent_info(workspace, agent_info, now)
            else:
                self.apply_lifecycle_cutoff(workspace, now)
            return await self._respond(agent, workspace, update_type, now)
        except Exception as e:
            logger.error(
                f"Error reconciling workspace {workspace.namespace}/{workspace.name}: {e}",
                exc_info=True,
            )
            return None

    def apply_agent_info(self, workspace: Workspace, agent_info: WorkspaceAgentInfo, now: datetime) -> None:
        """
        Apply an agent report to a workspace.

        Args:
            workspace: Workspace the report refers to, updated in place
            agent_info: Report sent by the agent
            now: Reconciliation time
        """
        self.apply_lifecycle_cutoff(workspace, now)

        actual_state = ActualStateCalculator.calculate_actual_state(
            agent_info.latest_k8s_deployment_info,
            termination_progress=agent_info.termination_progress,
            error_details=agent_info.error_details,
        )

        if actual_state in ABNORMAL_ACTUAL_STATES:
            logger.warning(
                f"Abnormal actual state {actual_state.value} for workspace "
                f"{workspace.namespace}/{workspace.name}",
                extra={
                    "error_type": ABNORMAL_ACTUAL_STATE,
                    "agent_id": workspace.agent_id,
                    "workspace_name": workspace.name,
                    "workspace_namespace": workspace.namespace,
                    "actual_state": actual_state.value,
                    "latest_k8s_deployment_info": (
                        agent_info.latest_k8s_deployment_info.model_dump(by_alias=True)
                        if agent_info.latest_k8s_deployment_info
                        else None
                    ),
                    "error_details": agent_info.error_details.model_dump() if agent_info.error_details else None,
                },
            )

        workspace.actual_state = actual_state

        if agent_info.deployment_resource_version is not None:
            workspace.deployment_resource_version = agent_info.deployment_resource_version

        if workspace.desired_state == WorkspaceState.RESTART_REQUESTED and actual_state == WorkspaceState.STOPPED:
            self._set_desired_state(workspace, WorkspaceState.RUNNING, now)

    def apply_lifecycle_cutoff(self, workspace: Workspace, now: datetime) -> None:
        """Force termination of a workspace that outlived max_hours_before_termination."""
        if workspace.desired_state == WorkspaceState.TERMINATED:
            return
        if not self.lifecycle_expired(workspace, now):
            return

        logger.info(
            f"Workspace {workspace.namespace}/{workspace.name} exceeded "
            f"{workspace.max_hours_before_termination}h, terminating"
        )
        self._set_desired_state(workspace, WorkspaceState.TERMINATED, now)

    @staticmethod
    def lifecycle_expired(workspace: Workspace, now: datetime) -> bool:
        return workspace.created_at + timedelta(hours=workspace.max_hours_before_termination) < now

    @staticmethod
    def should_emit_config(workspace: Workspace, update_type: UpdateType) -> bool:
        """
        Whether the agent must receive configuration for a workspace.

        Never for a workspace in Error; otherwise on full updates, for
        unprovisioned workspaces, and while desired and actual state differ.
        """
        if workspace.actual_state == WorkspaceState.ERROR:
            return False
        return (
            update_type == UpdateType.FULL
            or workspace.force_include_all_resources
            or workspace.desired_state != workspace.actual_state
        )

    async def _unreported_workspaces_to_return(
        self,
        agent: AgentConfig,
        update_type: UpdateType,
        reported_ids: set[int],
        now: datetime,
    ) -> list[Workspace]:
        """
        Workspaces the agent did not report on but must be told about.

        Full updates return every workspace that is not fully terminated. Partial
        updates only return workspaces with a desired state change the agent has
        not seen yet, unprovisioned workspaces, and workspaces due for termination.
        """
        workspaces = []
        for workspace in await self.repository.list_workspaces(agent.id):
            if workspace.id in reported_ids or workspace.terminated:
                continue

            if update_type == UpdateType.FULL or self._has_pending_changes(workspace, now):
                workspaces.append(workspace)

        return workspaces

    def _has_pending_changes(self, workspace: Workspace, now: datetime) -> bool:
        if workspace.responded_to_agent_at is None or workspace.force_include_all_resources:
            return True
        if workspace.responded_to_agent_at < workspace.desired_state_updated_at:
            return True
        return workspace.desired_state != WorkspaceState.TERMINATED and self.lifecycle_expired(workspace, now)

    async def _respond(
        self,
        agent: AgentConfig,
        workspace: Workspace,
        update_type: UpdateType,
        now: datetime,
    ) -> WorkspaceRailsInfo:
        """Compute the configuration to apply, record the response and persist the workspace."""
        config_to_apply = None

        if self.should_emit_config(workspace, update_type):
            include_all_resources = update_type == UpdateType.FULL or workspace.force_include_all_resources
            config_to_apply = self._generate_config(agent, workspace, include_all_resources)
            if config_to_apply is not None:
                workspace.force_include_all_resources = False

        # Never behind the desired state the agent was just told about
        workspace.responded_to_agent_at = max(now, workspace.desired_state_updated_at)
        await self.repository.save(workspace)

        return WorkspaceRailsInfo(
            name=workspace.name,
            namespace=workspace.namespace,
            desired_state=workspace.desired_state,
            actual_state=workspace.actual_state,
            deployment_resource_version=workspace.deployment_resource_version,
            config_to_apply=config_to_apply,
        )

    def _generate_config(
        self,
        agent: AgentConfig,
        workspace: Workspace,
        include_all_resources: bool,
    ) -> Optional[str]:
        """Generate serialized configuration, or None if it cannot be generated."""
        try:
            resources = self.config_generator.generate_desired_config(
                workspace, agent, include_all_resources=include_all_resources
            )
        except ValueError as e:
            logger.warning(
                f"Could not generate config for workspace {workspace.namespace}/{workspace.name}: {e}",
                extra={
                    "error_type": CONFIG_GENERATION_FAILED,
                    "agent_id": agent.id,
                    "workspace_name": workspace.name,
                    "workspace_namespace": workspace.namespace,
                },
            )
            return None

        if not resources:
            logger.warning(
                f"No resources generated for workspace {workspace.namespace}/{workspace.name}",
                extra={
                    "error_type": CONFIG_GENERATION_FAILED,
                    "agent_id": agent.id,
                    "workspace_name": workspace.name,
                    "workspace_namespace": workspace.namespace,
                },
            )
            return None

        return serialize_config(resources)

    @staticmethod
    def _set_desired_state(workspace: Workspace, desired_state: WorkspaceState, now: datetime) -> None:
        workspace.desired_state = desired_state
        workspace.desired_state_updated_at = now

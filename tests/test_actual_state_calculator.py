"""Tests for actual state calculation."""

import pytest

from conftest import deployment_info
from workspace_reconciler.models import DeploymentInfo, ErrorDetails, TerminationProgress, WorkspaceState
from workspace_reconciler.services import ActualStateCalculator, calculate_actual_state


class TestDeploymentConditions:
    """Classification of Deployment snapshots."""

    @pytest.mark.parametrize(
        "replicas,progressing,available,expected",
        [
            # Creating
            (1, "NewReplicaSetCreated", "MinimumReplicasUnavailable", WorkspaceState.STARTING),
            (1, "ReplicaSetUpdated", "MinimumReplicasUnavailable", WorkspaceState.STARTING),
            (1, "FoundNewReplicaSet", "MinimumReplicasUnavailable", WorkspaceState.STARTING),
            (1, "NewReplicaSetCreated", None, WorkspaceState.STARTING),
            # Stopping
            (0, "ReplicaSetUpdated", "MinimumReplicasAvailable", WorkspaceState.STOPPING),
            (0, "FoundNewReplicaSet", "MinimumReplicasAvailable", WorkspaceState.STOPPING),
            # Converged
            (1, "NewReplicaSetAvailable", "MinimumReplicasAvailable", WorkspaceState.RUNNING),
            (0, "NewReplicaSetAvailable", "MinimumReplicasAvailable", WorkspaceState.STOPPED),
            # Starting again after being stopped
            (1, "NewReplicaSetAvailable", "MinimumReplicasUnavailable", WorkspaceState.STARTING),
            (0, "NewReplicaSetAvailable", "MinimumReplicasUnavailable", WorkspaceState.UNKNOWN),
            # Failed
            (1, "ProgressDeadlineExceeded", "MinimumReplicasUnavailable", WorkspaceState.FAILED),
            (0, "ProgressDeadlineExceeded", "MinimumReplicasUnavailable", WorkspaceState.FAILED),
            # Unrecognized
            (1, "SomethingElse", "MinimumReplicasAvailable", WorkspaceState.UNKNOWN),
            (1, None, "MinimumReplicasAvailable", WorkspaceState.UNKNOWN),
        ],
    )
    def test_condition_table(self, replicas, progressing, available, expected):
        info = deployment_info(replicas, progressing, available)

        assert ActualStateCalculator.calculate_actual_state(info) == expected

    @pytest.mark.parametrize("replicas", [2, 5, -1])
    def test_unsupported_replicas_are_unknown(self, replicas):
        info = deployment_info(replicas, "NewReplicaSetAvailable", "MinimumReplicasAvailable")

        assert ActualStateCalculator.calculate_actual_state(info) == WorkspaceState.UNKNOWN

    def test_accepts_model_input(self):
        info = DeploymentInfo.model_validate(deployment_info(1, "NewReplicaSetAvailable", "MinimumReplicasAvailable"))

        assert ActualStateCalculator.calculate_actual_state(info) == WorkspaceState.RUNNING

    def test_camel_case_status_fields_are_accepted(self):
        info = deployment_info(1, "NewReplicaSetAvailable", "MinimumReplicasAvailable")
        info["status"]["availableReplicas"] = 1
        info["status"]["unavailableReplicas"] = 0

        assert ActualStateCalculator.calculate_actual_state(info) == WorkspaceState.RUNNING


class TestMissingData:
    """Incomplete snapshots never raise and yield Unknown."""

    @pytest.mark.parametrize(
        "info",
        [
            None,
            {},
            {"spec": {"replicas": 1}},
            {"spec": {}, "status": {"conditions": [{"type": "Progressing", "reason": "NewReplicaSetAvailable"}]}},
            {"status": {"conditions": [{"type": "Progressing", "reason": "NewReplicaSetAvailable"}]}},
            {"spec": {"replicas": 1}, "status": {}},
            {"spec": {"replicas": 1}, "status": {"conditions": []}},
            {"spec": {"replicas": 1}, "status": {"conditions": [{"type": "Progressing"}]}},
            {"spec": {"replicas": 1}, "status": {"conditions": [{"reason": "NewReplicaSetAvailable"}]}},
        ],
    )
    def test_unknown(self, info):
        assert ActualStateCalculator.calculate_actual_state(info) == WorkspaceState.UNKNOWN

    def test_conditions_without_reason_are_ignored(self):
        info = deployment_info(1, "NewReplicaSetAvailable", "MinimumReplicasAvailable")
        info["status"]["conditions"].insert(0, {"type": "ReplicaFailure"})

        assert ActualStateCalculator.calculate_actual_state(info) == WorkspaceState.RUNNING


class TestTerminationAndErrors:
    """Termination progress and error details take precedence over the Deployment."""

    running = deployment_info(1, "NewReplicaSetAvailable", "MinimumReplicasAvailable")

    def test_terminated(self):
        state = ActualStateCalculator.calculate_actual_state(
            self.running, termination_progress=TerminationProgress.TERMINATED
        )

        assert state == WorkspaceState.TERMINATED

    def test_terminating(self):
        state = ActualStateCalculator.calculate_actual_state(None, termination_progress="Terminating")

        assert state == WorkspaceState.TERMINATING

    def test_error_details(self):
        error = ErrorDetails(error_type="applier", error_message="failed to apply")

        state = ActualStateCalculator.calculate_actual_state(self.running, error_details=error)

        assert state == WorkspaceState.ERROR

    def test_error_details_as_mapping(self):
        state = ActualStateCalculator.calculate_actual_state(
            self.running, error_details={"error_type": "kubernetes", "error_message": "forbidden"}
        )

        assert state == WorkspaceState.ERROR

    @pytest.mark.parametrize(
        "progress,expected",
        [
            (TerminationProgress.TERMINATED, WorkspaceState.ERROR),
            (TerminationProgress.TERMINATING, WorkspaceState.TERMINATING),
        ],
    )
    def test_error_details_only_yield_to_terminating(self, progress, expected):
        state = ActualStateCalculator.calculate_actual_state(
            self.running,
            termination_progress=progress,
            error_details={"error_type": "applier"},
        )

        assert state == expected

    def test_invalid_termination_progress_raises(self):
        with pytest.raises(ValueError):
            ActualStateCalculator.calculate_actual_state(None, termination_progress="Gone")


def test_module_shortcut():
    info = deployment_info(0, "NewReplicaSetAvailable", "MinimumReplicasAvailable")

    assert calculate_actual_state(info) == WorkspaceState.STOPPED

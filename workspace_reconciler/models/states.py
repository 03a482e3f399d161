"""Workspace states and the other closed enumerations used by reconciliation."""

from enum import Enum


class WorkspaceState(str, Enum):
    """Workspace state, used for both desired_state and actual_state."""

    CREATION_REQUESTED = "CreationRequested"
    STARTING = "Starting"
    RUNNING = "Running"
    STOPPING = "Stopping"
    STOPPED = "Stopped"
    FAILED = "Failed"
    ERROR = "Error"
    TERMINATING = "Terminating"
    TERMINATED = "Terminated"
    RESTART_REQUESTED = "RestartRequested"
    UNKNOWN = "Unknown"


class UpdateType(str, Enum):
    """Kind of reconciliation request sent by an agent."""

    FULL = "full"
    PARTIAL = "partial"


class TerminationProgress(str, Enum):
    """Termination progress reported by an agent."""

    TERMINATING = "Terminating"
    TERMINATED = "Terminated"


class VariableType(str, Enum):
    """How a workspace variable is exposed to the workspace."""

    ENV_VAR = "env_var"
    FILE = "file"


# States a user may request for a workspace
VALID_DESIRED_STATES = frozenset(
    {
        WorkspaceState.RUNNING,
        WorkspaceState.STOPPED,
        WorkspaceState.TERMINATED,
        WorkspaceState.RESTART_REQUESTED,
    }
)

ABNORMAL_ACTUAL_STATES = frozenset({WorkspaceState.ERROR, WorkspaceState.UNKNOWN})

"""Services module for the Workspace Reconciler."""

from .actual_state_calculator import ActualStateCalculator, calculate_actual_state
from .desired_config_generator import DesiredConfigGenerator, serialize_config
from .devfile_parser import DevfileError, DevfileParser, load_devfile
from .reconciler import WorkspaceReconciler
from .workspace_manager import (
    DuplicateAgentError,
    DuplicateWorkspaceError,
    InvalidDesiredStateError,
    WorkspaceManager,
    WorkspaceNotFoundError,
)
from .workspace_repository import (
    InMemoryWorkspaceRepository,
    SqlWorkspaceRepository,
    StaleWorkspaceError,
    WorkspaceRepository,
)

__all__ = [
    "ActualStateCalculator",
    "calculate_actual_state",
    "DevfileParser",
    "DevfileError",
    "load_devfile",
    "DesiredConfigGenerator",
    "serialize_config",
    "WorkspaceRepository",
    "InMemoryWorkspaceRepository",
    "SqlWorkspaceRepository",
    "StaleWorkspaceError",
    "WorkspaceReconciler",
    "WorkspaceManager",
    "DuplicateAgentError",
    "DuplicateWorkspaceError",
    "WorkspaceNotFoundError",
    "InvalidDesiredStateError",
]

"""Conversion of processed devfiles into Kubernetes workspace resources."""

import logging
from functools import lru_cache
from typing import Any, Optional

import yaml
from kubernetes.client import (
    ApiClient,
    V1Container,
    V1ContainerPort,
    V1Deployment,
    V1DeploymentSpec,
    V1DeploymentStrategy,
    V1EmptyDirVolumeSource,
    V1EnvFromSource,
    V1EnvVar,
    V1LabelSelector,
    V1ObjectMeta,
    V1PersistentVolumeClaim,
    V1PersistentVolumeClaimSpec,
    V1PersistentVolumeClaimVolumeSource,
    V1PodSpec,
    V1PodTemplateSpec,
    V1ResourceRequirements,
    V1SecretEnvSource,
    V1SecretVolumeSource,
    V1Service,
    V1ServicePort,
    V1ServiceSpec,
    V1Volume,
    V1VolumeMount,
    V1VolumeResourceRequirements,
)
from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

WORKSPACE_NAME_LABEL = "workspaces.gitlab.com/name"
FILE_VARIABLES_MOUNT_PATH = "/.workspace-data/variables/file"
DEFAULT_VOLUME_SIZE = "15Gi"


class DevfileError(ValueError):
    """Raised when a processed devfile cannot be turned into Kubernetes resources."""


# Processed devfile schema. Unknown fields are rejected so that a devfile
# the agent could not apply never reaches the cluster.


class _DevfileModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class DevfileEnvVar(_DevfileModel):
    name: str
    value: str


class DevfileEndpoint(_DevfileModel):
    name: str
    target_port: int = Field(alias="targetPort")
    exposure: Optional[str] = None
    protocol: Optional[str] = None
    secure: Optional[bool] = None
    path: Optional[str] = None
    attributes: Optional[dict[str, Any]] = None


class DevfileVolumeMount(_DevfileModel):
    name: str
    path: str


class DevfileContainer(_DevfileModel):
    image: str
    command: Optional[list[str]] = None
    args: Optional[list[str]] = None
    env: list[DevfileEnvVar] = Field(default_factory=list)
    endpoints: list[DevfileEndpoint] = Field(default_factory=list)
    volume_mounts: list[DevfileVolumeMount] = Field(default_factory=list, alias="volumeMounts")
    memory_limit: Optional[str] = Field(None, alias="memoryLimit")
    memory_request: Optional[str] = Field(None, alias="memoryRequest")
    cpu_limit: Optional[str] = Field(None, alias="cpuLimit")
    cpu_request: Optional[str] = Field(None, alias="cpuRequest")
    mount_sources: Optional[bool] = Field(None, alias="mountSources")
    source_mapping: Optional[str] = Field(None, alias="sourceMapping")
    dedicated_pod: Optional[bool] = Field(None, alias="dedicatedPod")


class DevfileVolume(_DevfileModel):
    size: Optional[str] = None
    ephemeral: Optional[bool] = None


class DevfileComponent(_DevfileModel):
    name: str
    attributes: Optional[dict[str, Any]] = None
    container: Optional[DevfileContainer] = None
    volume: Optional[DevfileVolume] = None


class Devfile(_DevfileModel):
    schema_version: str = Field(alias="schemaVersion")
    metadata: Optional[dict[str, Any]] = None
    attributes: Optional[dict[str, Any]] = None
    components: list[DevfileComponent] = Field(default_factory=list)
    commands: Optional[list[dict[str, Any]]] = None
    events: Optional[dict[str, Any]] = None
    variables: Optional[dict[str, Any]] = None
    projects: Optional[list[dict[str, Any]]] = None
    starter_projects: Optional[list[dict[str, Any]]] = Field(None, alias="starterProjects")


def load_devfile(processed_devfile: str) -> Devfile:
    """
    Parse and validate a processed devfile.

    Args:
        processed_devfile: Devfile YAML

    Returns:
        Validated devfile

    Raises:
        DevfileError: If the YAML is malformed or does not match the devfile schema
    """
    try:
        document = yaml.safe_load(processed_devfile)
    except yaml.YAMLError as e:
        raise DevfileError(f"Invalid devfile YAML: {e}") from e

    if not isinstance(document, dict):
        raise DevfileError("Devfile must be a YAML mapping")

    try:
        devfile = Devfile.model_validate(document)
    except ValidationError as e:
        raise DevfileError(f"Invalid devfile: {e}") from e

    if not any(component.container for component in devfile.components):
        raise DevfileError("Devfile has no container components")

    return devfile


@lru_cache
def _api_client() -> ApiClient:
    return ApiClient()


def to_dict(obj: Any) -> dict[str, Any]:
    """Serialize a kubernetes client model into its API (camelCase) mapping."""
    return _api_client().sanitize_for_serialization(obj)


class DevfileParser:
    """Builds the core Kubernetes resources of a workspace from its devfile."""

    @classmethod
    def get_all(
        cls,
        processed_devfile: str,
        name: str,
        namespace: str,
        replicas: int,
        labels: dict[str, str],
        annotations: dict[str, str],
        env_secret_names: list[str],
        file_secret_names: list[str],
    ) -> list[dict[str, Any]]:
        """
        Build Deployment, Service and PersistentVolumeClaims for a workspace.

        Args:
            processed_devfile: Devfile YAML
            name: Workspace name, used for every resource
            namespace: Workspace namespace
            replicas: Deployment replicas (1 started, 0 stopped)
            labels: Labels added to every resource
            annotations: Annotations added to every resource
            env_secret_names: Secrets exposed as environment variables
            file_secret_names: Secrets mounted as files

        Returns:
            Kubernetes resources as API mappings

        Raises:
            DevfileError: If the devfile is invalid
        """
        devfile = load_devfile(processed_devfile)

        selector_labels = {**labels, WORKSPACE_NAME_LABEL: name}
        metadata = V1ObjectMeta(
            name=name,
            namespace=namespace,
            labels=selector_labels,
            annotations=dict(annotations),
        )

        volume_components = [c for c in devfile.components if c.volume is not None]
        container_components = [c for c in devfile.components if c.container is not None]

        volumes = []
        for component in volume_components:
            if component.volume.ephemeral:
                volumes.append(V1Volume(name=component.name, empty_dir=V1EmptyDirVolumeSource()))
            else:
                volumes.append(
                    V1Volume(
                        name=component.name,
                        persistent_volume_claim=V1PersistentVolumeClaimVolumeSource(
                            claim_name=f"{name}-{component.name}"
                        ),
                    )
                )
        volumes += [
            V1Volume(name=secret_name, secret=V1SecretVolumeSource(secret_name=secret_name))
            for secret_name in file_secret_names
        ]

        containers = [
            cls._build_container(component.name, component.container, env_secret_names, file_secret_names)
            for component in container_components
        ]

        deployment = V1Deployment(
            api_version="apps/v1",
            kind="Deployment",
            metadata=metadata,
            spec=V1DeploymentSpec(
                replicas=replicas,
                selector=V1LabelSelector(match_labels={WORKSPACE_NAME_LABEL: name}),
                strategy=V1DeploymentStrategy(type="Recreate"),
                template=V1PodTemplateSpec(
                    metadata=V1ObjectMeta(
                        name=name,
                        namespace=namespace,
                        labels=selector_labels,
                        annotations=dict(annotations),
                    ),
                    spec=V1PodSpec(
                        containers=containers,
                        volumes=volumes or None,
                    ),
                ),
            ),
        )
        resources = [to_dict(deployment)]

        ports = [
            V1ServicePort(name=endpoint.name, port=endpoint.target_port, target_port=endpoint.target_port)
            for component in container_components
            for endpoint in component.container.endpoints
        ]
        if ports:
            service = V1Service(
                api_version="v1",
                kind="Service",
                metadata=metadata,
                spec=V1ServiceSpec(
                    ports=ports,
                    selector={WORKSPACE_NAME_LABEL: name},
                ),
            )
            resources.append(to_dict(service))

        for component in volume_components:
            if component.volume.ephemeral:
                continue
            claim = V1PersistentVolumeClaim(
                api_version="v1",
                kind="PersistentVolumeClaim",
                metadata=V1ObjectMeta(
                    name=f"{name}-{component.name}",
                    namespace=namespace,
                    labels=dict(labels),
                    annotations=dict(annotations),
                ),
                spec=V1PersistentVolumeClaimSpec(
                    access_modes=["ReadWriteOnce"],
                    resources=V1VolumeResourceRequirements(
                        requests={"storage": component.volume.size or DEFAULT_VOLUME_SIZE}
                    ),
                ),
            )
            resources.append(to_dict(claim))

        logger.debug(f"Built {len(resources)} resources from devfile for workspace {namespace}/{name}")

        return resources

    @staticmethod
    def _build_container(
        name: str,
        container: DevfileContainer,
        env_secret_names: list[str],
        file_secret_names: list[str],
    ) -> V1Container:
        """Build a pod container from a devfile container component."""
        limits = {}
        if container.memory_limit:
            limits["memory"] = container.memory_limit
        if container.cpu_limit:
            limits["cpu"] = container.cpu_limit

        requests = {}
        if container.memory_request:
            requests["memory"] = container.memory_request
        if container.cpu_request:
            requests["cpu"] = container.cpu_request

        volume_mounts = [V1VolumeMount(name=vm.name, mount_path=vm.path) for vm in container.volume_mounts]
        volume_mounts += [
            V1VolumeMount(name=secret_name, mount_path=FILE_VARIABLES_MOUNT_PATH)
            for secret_name in file_secret_names
        ]

        return V1Container(
            name=name,
            image=container.image,
            image_pull_policy="IfNotPresent",
            command=container.command,
            args=container.args,
            env=[V1EnvVar(name=env.name, value=env.value) for env in container.env] or None,
            env_from=[V1EnvFromSource(secret_ref=V1SecretEnvSource(name=s)) for s in env_secret_names] or None,
            ports=[
                V1ContainerPort(name=endpoint.name, container_port=endpoint.target_port, protocol="TCP")
                for endpoint in container.endpoints
            ]
            or None,
            resources=V1ResourceRequirements(limits=limits or None, requests=requests or None),
            volume_mounts=volume_mounts or None,
        )

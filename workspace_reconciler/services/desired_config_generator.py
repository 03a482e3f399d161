"""Desired Kubernetes configuration for workspaces."""

import base64
import logging
from typing import Any

import yaml
from kubernetes.client import (
    V1ConfigMap,
    V1IPBlock,
    V1LabelSelector,
    V1NetworkPolicy,
    V1NetworkPolicyEgressRule,
    V1NetworkPolicyIngressRule,
    V1NetworkPolicyPeer,
    V1NetworkPolicyPort,
    V1NetworkPolicySpec,
    V1ObjectMeta,
    V1Secret,
)

from ..models.schemas import AgentConfig, Workspace
from ..models.states import VariableType, WorkspaceState
from .devfile_parser import DevfileParser, to_dict

logger = logging.getLogger(__name__)

AGENT_ID_LABEL = "agent.gitlab.com/id"
INVENTORY_ID_LABEL = "cli-utils.sigs.k8s.io/inventory-id"
OWNING_INVENTORY_ANNOTATION = "config.k8s.io/owning-inventory"
HOST_TEMPLATE_ANNOTATION = "workspaces.gitlab.com/host-template"
WORKSPACE_ID_ANNOTATION = "workspaces.gitlab.com/id"

STARTED_STATES = frozenset({WorkspaceState.CREATION_REQUESTED, WorkspaceState.RUNNING})

PRIVATE_CIDRS = ["10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16"]


class DesiredConfigGenerator:
    """
    Generates the Kubernetes resources an agent must apply for a workspace.

    Resources, in order:
    - Workspace inventory ConfigMap
    - Deployment, Service and PersistentVolumeClaims from the devfile
    - NetworkPolicy, when enabled for the agent
    - Secrets inventory ConfigMap and the variable Secrets, when all resources are requested
    """

    def __init__(self, devfile_parser: type[DevfileParser] = DevfileParser):
        self.devfile_parser = devfile_parser

    def generate_desired_config(
        self,
        workspace: Workspace,
        agent: AgentConfig,
        include_all_resources: bool,
    ) -> list[dict[str, Any]]:
        """
        Generate the desired configuration of a workspace.

        Args:
            workspace: Workspace to generate configuration for
            agent: Agent managing the workspace
            include_all_resources: Also include the Secrets holding workspace variables

        Returns:
            Kubernetes resources as API mappings

        Raises:
            DevfileError: If the workspace devfile is invalid
        """
        env_secret_name = f"{workspace.name}-env-var"
        file_secret_name = f"{workspace.name}-file"
        replicas = self.get_workspace_replicas(workspace.desired_state)
        domain_template = self.get_domain_template_annotation(workspace.name, agent.dns_zone)
        inventory_name = f"{workspace.name}-workspace-inventory"
        labels, annotations = self.get_labels_and_annotations(
            agent_id=agent.id,
            domain_template=domain_template,
            owning_inventory=inventory_name,
            workspace_id=workspace.id,
        )

        desired_config = [self.get_inventory_config_map(inventory_name, workspace.namespace, agent.id)]
        desired_config.extend(
            self.devfile_parser.get_all(
                processed_devfile=workspace.processed_devfile,
                name=workspace.name,
                namespace=workspace.namespace,
                replicas=replicas,
                labels=labels,
                annotations=annotations,
                env_secret_names=[env_secret_name],
                file_secret_names=[file_secret_name],
            )
        )

        if agent.network_policy_enabled:
            desired_config.append(
                self.get_network_policy(
                    name=workspace.name,
                    namespace=workspace.namespace,
                    labels=labels,
                    annotations=annotations,
                    gitlab_workspaces_proxy_namespace=agent.gitlab_workspaces_proxy_namespace,
                )
            )

        if include_all_resources:
            desired_config.extend(
                self.get_k8s_resources_for_secrets(workspace, agent, env_secret_name, file_secret_name)
            )

        logger.debug(
            f"Generated {len(desired_config)} resources for workspace {workspace.namespace}/{workspace.name} "
            f"(include_all_resources={include_all_resources})"
        )

        return desired_config

    def get_k8s_resources_for_secrets(
        self,
        workspace: Workspace,
        agent: AgentConfig,
        env_secret_name: str,
        file_secret_name: str,
    ) -> list[dict[str, Any]]:
        """Build the secrets inventory and the two variable Secrets."""
        inventory_name = f"{workspace.name}-secrets-inventory"
        domain_template = self.get_domain_template_annotation(workspace.name, agent.dns_zone)
        labels, annotations = self.get_labels_and_annotations(
            agent_id=agent.id,
            domain_template=domain_template,
            owning_inventory=inventory_name,
            workspace_id=workspace.id,
        )

        env_data = {v.key: v.value for v in workspace.variables if v.variable_type == VariableType.ENV_VAR}
        file_data = {v.key: v.value for v in workspace.variables if v.variable_type == VariableType.FILE}

        return [
            self.get_inventory_config_map(inventory_name, workspace.namespace, agent.id),
            self.get_secret(env_secret_name, workspace.namespace, labels, annotations, env_data),
            self.get_secret(file_secret_name, workspace.namespace, labels, annotations, file_data),
        ]

    @staticmethod
    def get_workspace_replicas(desired_state: WorkspaceState) -> int:
        """Replicas for a desired state: started workspaces run a single pod."""
        return 1 if desired_state in STARTED_STATES else 0

    @staticmethod
    def get_domain_template_annotation(name: str, dns_zone: str) -> str:
        return f"{{{{.port}}}}-{name}.{dns_zone}"

    @staticmethod
    def get_labels_and_annotations(
        agent_id: int,
        domain_template: str,
        owning_inventory: str,
        workspace_id: Any,
    ) -> tuple[dict[str, str], dict[str, str]]:
        labels = {AGENT_ID_LABEL: str(agent_id)}
        annotations = {
            OWNING_INVENTORY_ANNOTATION: owning_inventory,
            HOST_TEMPLATE_ANNOTATION: domain_template,
            WORKSPACE_ID_ANNOTATION: str(workspace_id),
        }
        return labels, annotations

    @staticmethod
    def get_inventory_config_map(name: str, namespace: str, agent_id: int) -> dict[str, Any]:
        config_map = V1ConfigMap(
            api_version="v1",
            kind="ConfigMap",
            metadata=V1ObjectMeta(
                name=name,
                namespace=namespace,
                labels={INVENTORY_ID_LABEL: name, AGENT_ID_LABEL: str(agent_id)},
            ),
        )
        return to_dict(config_map)

    @staticmethod
    def get_secret(
        name: str,
        namespace: str,
        labels: dict[str, str],
        annotations: dict[str, str],
        data: dict[str, str],
    ) -> dict[str, Any]:
        secret = V1Secret(
            api_version="v1",
            kind="Secret",
            metadata=V1ObjectMeta(name=name, namespace=namespace, labels=labels, annotations=annotations),
            data={key: base64.b64encode(value.encode()).decode() for key, value in data.items()},
        )
        serialized = to_dict(secret)
        # Empty secrets still carry an explicit data mapping
        serialized.setdefault("data", {})
        return serialized

    @staticmethod
    def get_network_policy(
        name: str,
        namespace: str,
        labels: dict[str, str],
        annotations: dict[str, str],
        gitlab_workspaces_proxy_namespace: str,
    ) -> dict[str, Any]:
        """Allow ingress from the workspaces proxy only, egress to the internet and cluster DNS."""
        proxy_peer = V1NetworkPolicyPeer(
            namespace_selector=V1LabelSelector(
                match_labels={"kubernetes.io/metadata.name": gitlab_workspaces_proxy_namespace}
            ),
            pod_selector=V1LabelSelector(match_labels={"app.kubernetes.io/name": "gitlab-workspaces-proxy"}),
        )
        dns_peer = V1NetworkPolicyPeer(
            namespace_selector=V1LabelSelector(match_labels={"kubernetes.io/metadata.name": "kube-system"})
        )

        policy = V1NetworkPolicy(
            api_version="networking.k8s.io/v1",
            kind="NetworkPolicy",
            metadata=V1ObjectMeta(name=name, namespace=namespace, labels=labels, annotations=annotations),
            spec=V1NetworkPolicySpec(
                pod_selector=V1LabelSelector(),
                policy_types=["Ingress", "Egress"],
                ingress=[V1NetworkPolicyIngressRule(_from=[proxy_peer])],
                egress=[
                    V1NetworkPolicyEgressRule(
                        to=[V1NetworkPolicyPeer(ip_block=V1IPBlock(cidr="0.0.0.0/0", _except=PRIVATE_CIDRS))]
                    ),
                    V1NetworkPolicyEgressRule(
                        ports=[
                            V1NetworkPolicyPort(port=53, protocol="TCP"),
                            V1NetworkPolicyPort(port=53, protocol="UDP"),
                        ],
                        to=[dns_peer],
                    ),
                ],
            ),
        )
        serialized = to_dict(policy)
        serialized["spec"].setdefault("podSelector", {})
        return serialized


def serialize_config(resources: list[dict[str, Any]]) -> str:
    """Render resources as the YAML document stream returned to agents."""
    return yaml.safe_dump_all(resources, sort_keys=False)

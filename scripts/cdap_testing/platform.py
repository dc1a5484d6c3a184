#!/usr/bin/env python3

"""
This module provides `Cdap`, a facade over the REST API of the cluster covering the
operations the integration scenarios need: namespaces, datasets, streams, artifacts,
applications and privileges.
"""

import json
import logging

from enum import Enum, unique
from pathlib import Path
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Set

from cdap_testing.client import RestClient
from cdap_testing.entities import (Action, ApplicationId, ArtifactId, DatasetId, EntityId, NamespaceId,
                                   NamespaceMeta, Principal, Privilege, StreamId)
from cdap_testing.faults import NotFoundFault
from cdap_testing.programs import ApplicationManager

@unique
class ArtifactScope(Enum):
    SYSTEM = "SYSTEM"
    USER = "USER"

class ArtifactSummary(NamedTuple):
    name: str
    version: str
    scope: ArtifactScope = ArtifactScope.USER

    def to_json(self) -> Dict[str, str]:
        return {"name": self.name, "version": self.version, "scope": self.scope.value}

    @staticmethod
    def from_json(json_dict: Dict[str, Any]) -> "ArtifactSummary":
        return ArtifactSummary(json_dict["name"], json_dict["version"],
                               ArtifactScope(json_dict.get("scope", "USER")))

class PluginSummary(NamedTuple):
    name: str
    type: str
    class_name: str
    artifact: ArtifactSummary
    description: str = ""

    @staticmethod
    def from_json(json_dict: Dict[str, Any]) -> "PluginSummary":
        return PluginSummary(json_dict["name"],
                             json_dict["type"],
                             json_dict.get("className", ""),
                             ArtifactSummary.from_json(json_dict["artifact"]),
                             json_dict.get("description", ""))

class AppRequest(NamedTuple):
    """
    The request body used to deploy an application from an artifact.
    """

    artifact: ArtifactSummary
    config: Any = None
    owner_principal: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        json_dict: Dict[str, Any] = {"artifact": self.artifact.to_json()}
        if self.config is not None:
            json_dict["config"] = self.config.to_json() if hasattr(self.config, "to_json") else self.config
        if self.owner_principal is not None:
            json_dict["principal"] = self.owner_principal

        return json_dict

NAMESPACE = "namespaces/{namespace}"
DATASET = NAMESPACE + "/data/datasets/{dataset}"
STREAM = NAMESPACE + "/streams/{stream}"
APP = NAMESPACE + "/apps/{app}"
PRIVILEGES = "security/authorization/privileges/{operation}"

class Cdap:
    """
    The operations of the cluster, performed with the identity of one authenticated client.
    """

    def __init__(self, client: RestClient, poll_interval: float = 1.0) -> None:
        self.client = client
        self.poll_interval = poll_interval

    # Meta

    def version(self) -> str:
        return self.client.request("GET", "version")["version"]

    def cdap_config(self) -> Dict[str, str]:
        entries = self.client.request("GET", "config/cdap") or []
        return {entry["name"]: entry["value"] for entry in entries}

    # Namespaces

    def create_namespace(self, meta: NamespaceMeta) -> None:
        logging.info("Creating namespace %s.", meta.namespace_id.namespace)
        self.client.request("PUT", NAMESPACE, body=meta.to_json(), namespace=meta.namespace_id.namespace)

    def delete_namespace(self, namespace: NamespaceId) -> None:
        logging.info("Deleting namespace %s.", namespace.namespace)
        self.client.request("DELETE", "unrecoverable/" + NAMESPACE, namespace=namespace.namespace)

    def namespace_exists(self, namespace: NamespaceId) -> bool:
        try:
            self.client.request("GET", NAMESPACE, namespace=namespace.namespace)
        except NotFoundFault:
            return False

        return True

    # Datasets

    def _dataset(self, method: str, dataset: DatasetId, suffix: str = "", **kwargs: Any) -> Any:
        return self.client.request(method, DATASET + suffix, namespace=dataset.namespace,
                                   dataset=dataset.dataset, **kwargs)

    def create_dataset(self, dataset: DatasetId, type_name: str,
                       properties: Optional[Dict[str, str]] = None) -> None:
        logging.info("Creating dataset %s of type %s.", dataset.path, type_name)
        self._dataset("PUT", dataset, body={"typeName": type_name, "properties": properties or {}})

    def dataset_exists(self, dataset: DatasetId) -> bool:
        try:
            self._dataset("GET", dataset)
        except NotFoundFault:
            return False

        return True

    def get_dataset(self, dataset: DatasetId) -> Dict[str, Any]:
        return self._dataset("GET", dataset)

    def list_datasets(self, namespace: NamespaceId) -> List[Dict[str, Any]]:
        return self.client.request("GET", NAMESPACE + "/data/datasets", namespace=namespace.namespace) or []

    def truncate_dataset(self, dataset: DatasetId) -> None:
        self._dataset("POST", dataset, "/admin/truncate")

    def update_dataset(self, dataset: DatasetId, properties: Dict[str, str]) -> None:
        self._dataset("PUT", dataset, "/properties", body=properties)

    def delete_dataset(self, dataset: DatasetId) -> None:
        logging.info("Deleting dataset %s.", dataset.path)
        self._dataset("DELETE", dataset)

    # Streams

    def _stream(self, method: str, stream: StreamId, suffix: str = "", **kwargs: Any) -> Any:
        return self.client.request(method, STREAM + suffix, namespace=stream.namespace,
                                   stream=stream.stream, **kwargs)

    def create_stream(self, stream: StreamId) -> None:
        logging.info("Creating stream %s.", stream.path)
        self._stream("PUT", stream)

    def delete_stream(self, stream: StreamId) -> None:
        logging.info("Deleting stream %s.", stream.path)
        self._stream("DELETE", stream)

    def list_streams(self, namespace: NamespaceId) -> List[Dict[str, Any]]:
        return self.client.request("GET", NAMESPACE + "/streams", namespace=namespace.namespace) or []

    def get_stream_config(self, stream: StreamId) -> Dict[str, Any]:
        return self._stream("GET", stream)

    def truncate_stream(self, stream: StreamId) -> None:
        self._stream("POST", stream, "/truncate")

    def send_event(self, stream: StreamId, event: str) -> None:
        self._stream("POST", stream, body=event)

    def get_events(self, stream: StreamId, start: int = 0, end: Optional[int] = None,
                   limit: Optional[int] = None) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"start": start}
        if end is not None:
            params["end"] = end
        if limit is not None:
            params["limit"] = limit

        return self._stream("GET", stream, "/events", params=params) or []

    # Artifacts

    def add_artifact(self,
                     artifact: ArtifactId,
                     jar_file: Path,
                     parents: Iterable[str] = (),
                     plugins: Optional[List[Dict[str, Any]]] = None) -> None:
        """
        Uploads an artifact jar.

        Args:
            artifact: The id of the artifact, including its version.
            jar_file: The path to the jar file on the local file system.
            parents: Parent artifact ranges the artifact extends, e.g. "system:cdap-data-pipeline[4.0.0,5.0.0)".
            plugins: Explicit plugin descriptions, if the jar does not carry them.

        """

        headers = {"Artifact-Version": artifact.version, "Content-Type": "application/octet-stream"}
        parents = list(parents)
        if parents:
            headers["Artifact-Extends"] = "/".join(parents)
        if plugins:
            headers["Artifact-Plugins"] = json.dumps(plugins)

        logging.info("Adding artifact %s from %s.", artifact.path, jar_file)
        with jar_file.open("rb") as jar:
            self.client.request("POST", NAMESPACE + "/artifacts/{artifact}", body=jar.read(), headers=headers,
                                namespace=artifact.namespace, artifact=artifact.artifact)

    def plugin_summaries(self,
                         parent: ArtifactId,
                         plugin_type: str,
                         scope: ArtifactScope = ArtifactScope.USER) -> List[PluginSummary]:
        """
        Lists the plugins of the given type that extend the parent artifact.

        Raises:
            NotFoundFault: If the parent artifact does not exist (yet).

        """

        summaries = self.client.request("GET",
                                        NAMESPACE + "/artifacts/{artifact}/versions/{version}/extensions/{type}",
                                        params={"scope": scope.value},
                                        namespace=parent.namespace,
                                        artifact=parent.artifact,
                                        version=parent.version,
                                        type=plugin_type) or []
        return [PluginSummary.from_json(summary) for summary in summaries]

    def list_artifacts(self, namespace: NamespaceId,
                       scope: Optional[ArtifactScope] = None) -> List[ArtifactSummary]:
        params = {"scope": scope.value} if scope is not None else None
        summaries = self.client.request("GET", NAMESPACE + "/artifacts", params=params,
                                        namespace=namespace.namespace) or []
        return [ArtifactSummary.from_json(summary) for summary in summaries]

    # Applications

    def deploy_application(self, app_id: ApplicationId, app_request: AppRequest) -> ApplicationManager:
        logging.info("Deploying application %s from artifact %s.", app_id.path, app_request.artifact.name)
        self.client.request("PUT", APP, body=app_request.to_json(), namespace=app_id.namespace,
                            app=app_id.application)
        return self.application_manager(app_id)

    def application_manager(self, app_id: ApplicationId) -> ApplicationManager:
        return ApplicationManager(self.client, app_id, self.poll_interval)

    def list_applications(self, namespace: NamespaceId) -> List[Dict[str, Any]]:
        return self.client.request("GET", NAMESPACE + "/apps", namespace=namespace.namespace) or []

    def delete_application(self, app_id: ApplicationId) -> None:
        logging.info("Deleting application %s.", app_id.path)
        self.client.request("DELETE", APP, namespace=app_id.namespace, app=app_id.application)

    # Privileges

    def grant(self, principal: Principal, entity: EntityId, actions: Iterable[Action]) -> None:
        actions = sorted(set(actions), key=lambda action: action.value)
        logging.info("Granting %s on %s to %s.", [action.value for action in actions], entity.path, principal.name)
        self.client.request("POST", PRIVILEGES, operation="grant",
                            body={"entity": entity.to_json(),
                                  "principal": principal.to_json(),
                                  "actions": [action.value for action in actions]})

    def revoke(self, principal: Principal, entity: Optional[EntityId] = None,
               actions: Optional[Iterable[Action]] = None) -> None:
        """
        Revokes privileges from a principal.

        Args:
            principal: The principal to revoke the privileges from.
            entity: The entity to revoke the privileges on. If None, all privileges of the principal are revoked.
            actions: The actions to revoke. If None, all actions on the entity are revoked.

        """

        if entity is None:
            logging.info("Revoking all privileges of %s.", principal.name)
            by_entity: Dict[EntityId, Set[Action]] = {}
            for privilege in self.list_privileges(principal):
                by_entity.setdefault(privilege.entity, set()).add(privilege.action)
            for privileged_entity, privileged_actions in by_entity.items():
                self.revoke(principal, privileged_entity, privileged_actions)
            return

        body: Dict[str, Any] = {"entity": entity.to_json(), "principal": principal.to_json()}
        if actions is not None:
            body["actions"] = sorted(action.value for action in actions)

        logging.info("Revoking %s on %s from %s.", body.get("actions", "all actions"), entity.path, principal.name)
        self.client.request("POST", PRIVILEGES, operation="revoke", body=body)

    def list_privileges(self, principal: Principal) -> Set[Privilege]:
        privileges = self.client.request("GET", "security/authorization/{type}/{name}/privileges",
                                         type=principal.type.value.lower(), name=principal.name) or []
        return {Privilege.from_json(privilege) for privilege in privileges}

#!/usr/bin/env python3

"""
This module provides the identifiers of the CDAP entities that are subject to access control,
the principals and actions of the authorization model and the namespace metadata.

Entity identifiers serialize to the JSON form used by the CDAP REST API, for example
`{"entity": "DATASET", "namespace": "ns1", "dataset": "ds1"}`.
"""

from enum import Enum, unique
from typing import Any, Dict, NamedTuple, Optional, Tuple

@unique
class Action(Enum):
    """
    The actions a principal may be authorized for. ADMIN does not imply the other actions.
    """

    READ = "READ"
    WRITE = "WRITE"
    EXECUTE = "EXECUTE"
    ADMIN = "ADMIN"

@unique
class PrincipalType(Enum):
    USER = "USER"
    GROUP = "GROUP"
    ROLE = "ROLE"

class Principal(NamedTuple):
    """
    An identity evaluated for authorization purposes.
    """

    name: str
    type: PrincipalType = PrincipalType.USER

    def to_json(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.type.value}

    @staticmethod
    def user(name: str) -> "Principal":
        return Principal(name, PrincipalType.USER)

@unique
class ProgramType(Enum):
    """
    The program types, with the path segment used for them in the REST API.
    """

    FLOW = "flows"
    MAPREDUCE = "mapreduce"
    SPARK = "spark"
    WORKFLOW = "workflows"
    SERVICE = "services"
    WORKER = "workers"

    @property
    def path_segment(self) -> str:
        return self.value

class EntityId:
    """
    The base class of entity identifiers. Subclasses define `entity_type` and `_fields`.
    """

    entity_type = ""
    _fields: Tuple[str, ...] = ()

    def _values(self) -> Tuple[Any, ...]:
        return tuple(getattr(self, field) for field in self._fields)

    @property
    def path(self) -> str:
        """
        Returns the hierarchical key of the entity, for example "ns1.ds1".
        """

        return ".".join(str(value) for value in self._values())

    @property
    def namespace_id(self) -> Optional["NamespaceId"]:
        """
        Returns the namespace that owns the entity, or None for entities outside namespaces.
        """

        namespace = getattr(self, "namespace", None)
        return NamespaceId(namespace) if namespace is not None else None

    def to_json(self) -> Dict[str, Any]:
        json_dict: Dict[str, Any] = {"entity": self.entity_type}
        for field in self._fields:
            value = getattr(self, field)
            json_dict[field] = value.name if isinstance(value, ProgramType) else value

        return json_dict

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self._values() == other._values() # type: ignore

    def __hash__(self) -> int:
        return hash((self.entity_type,) + self._values())

    def __repr__(self) -> str:
        return "{}({})".format(type(self).__name__, self.path)

class NamespaceId(EntityId):
    entity_type = "NAMESPACE"
    _fields = ("namespace",)

    def __init__(self, namespace: str) -> None:
        self.namespace = namespace

    @property
    def namespace_id(self) -> Optional["NamespaceId"]:
        return self

    def dataset(self, name: str) -> "DatasetId":
        return DatasetId(self.namespace, name)

    def stream(self, name: str) -> "StreamId":
        return StreamId(self.namespace, name)

    def app(self, name: str) -> "ApplicationId":
        return ApplicationId(self.namespace, name)

    def artifact(self, name: str, version: str) -> "ArtifactId":
        return ArtifactId(self.namespace, name, version)

    def dataset_module(self, name: str) -> "DatasetModuleId":
        return DatasetModuleId(self.namespace, name)

    def dataset_type(self, name: str) -> "DatasetTypeId":
        return DatasetTypeId(self.namespace, name)

class DatasetId(EntityId):
    entity_type = "DATASET"
    _fields = ("namespace", "dataset")

    def __init__(self, namespace: str, dataset: str) -> None:
        self.namespace = namespace
        self.dataset = dataset

class DatasetModuleId(EntityId):
    entity_type = "DATASET_MODULE"
    _fields = ("namespace", "module")

    def __init__(self, namespace: str, module: str) -> None:
        self.namespace = namespace
        self.module = module

class DatasetTypeId(EntityId):
    entity_type = "DATASET_TYPE"
    _fields = ("namespace", "type")

    def __init__(self, namespace: str, type_name: str) -> None:
        self.namespace = namespace
        self.type = type_name

class StreamId(EntityId):
    entity_type = "STREAM"
    _fields = ("namespace", "stream")

    def __init__(self, namespace: str, stream: str) -> None:
        self.namespace = namespace
        self.stream = stream

class ArtifactId(EntityId):
    entity_type = "ARTIFACT"
    _fields = ("namespace", "artifact", "version")

    def __init__(self, namespace: str, artifact: str, version: str) -> None:
        self.namespace = namespace
        self.artifact = artifact
        self.version = version

class ApplicationId(EntityId):
    entity_type = "APPLICATION"
    _fields = ("namespace", "application")

    def __init__(self, namespace: str, application: str) -> None:
        self.namespace = namespace
        self.application = application

    def program(self, program_type: ProgramType, name: str) -> "ProgramId":
        return ProgramId(self.namespace, self.application, program_type, name)

    def service(self, name: str) -> "ProgramId":
        return self.program(ProgramType.SERVICE, name)

    def flow(self, name: str) -> "ProgramId":
        return self.program(ProgramType.FLOW, name)

    def workflow(self, name: str) -> "ProgramId":
        return self.program(ProgramType.WORKFLOW, name)

    def mr(self, name: str) -> "ProgramId":
        return self.program(ProgramType.MAPREDUCE, name)

    def spark(self, name: str) -> "ProgramId":
        return self.program(ProgramType.SPARK, name)

class ProgramId(EntityId):
    entity_type = "PROGRAM"
    _fields = ("namespace", "application", "type", "program")

    def __init__(self, namespace: str, application: str, program_type: ProgramType, program: str) -> None:
        self.namespace = namespace
        self.application = application
        self.type = program_type
        self.program = program

    @property
    def path(self) -> str:
        return "{}.{}.{}.{}".format(self.namespace, self.application, self.type.name.lower(), self.program)

    @property
    def application_id(self) -> ApplicationId:
        return ApplicationId(self.namespace, self.application)

class KerberosPrincipalId(EntityId):
    """
    An impersonation identity. ADMIN on it is needed to create entities owned by it.
    """

    entity_type = "KERBEROSPRINCIPAL"
    _fields = ("principal",)

    def __init__(self, principal: str) -> None:
        self.principal = principal

_ENTITY_CLASSES = {cls.entity_type: cls for cls in (NamespaceId, DatasetId, DatasetModuleId, DatasetTypeId,
                                                     StreamId, ArtifactId, ApplicationId, ProgramId,
                                                     KerberosPrincipalId)}

def entity_from_json(json_dict: Dict[str, Any]) -> EntityId:
    """
    Creates an entity identifier from its JSON form.

    Args:
        json_dict: The JSON object describing the entity.

    Returns:
        The entity identifier.

    Raises:
        ValueError: If the entity type is unknown.

    """

    entity_type = json_dict.get("entity")
    cls = _ENTITY_CLASSES.get(entity_type) # type: ignore
    if cls is None:
        raise ValueError("Unknown entity type: {}.".format(entity_type))

    values = [json_dict[field] for field in cls._fields]
    if cls is ProgramId:
        values[2] = ProgramType[values[2]]

    return cls(*values)

class Privilege(NamedTuple):
    entity: EntityId
    action: Action

    @staticmethod
    def from_json(json_dict: Dict[str, Any]) -> "Privilege":
        return Privilege(entity_from_json(json_dict["entity"]), Action(json_dict["action"]))

class NamespaceConfig(NamedTuple):
    """
    The optional settings of a namespace. A namespace with a principal is impersonated.
    """

    principal: Optional[str] = None
    keytab_uri: Optional[str] = None
    scheduler_queue_name: Optional[str] = None
    root_directory: Optional[str] = None
    hbase_namespace: Optional[str] = None
    hive_database: Optional[str] = None

    def to_json(self) -> Dict[str, str]:
        keys = {"principal": "principal",
                "keytab_uri": "keytabURI",
                "scheduler_queue_name": "scheduler.queue.name",
                "root_directory": "root.directory",
                "hbase_namespace": "hbase.namespace",
                "hive_database": "hive.database"}

        return {json_key: getattr(self, field) for field, json_key in keys.items() if getattr(self, field) is not None}

class NamespaceMeta(NamedTuple):
    namespace_id: NamespaceId
    description: str = ""
    config: NamespaceConfig = NamespaceConfig()

    @property
    def principal(self) -> Optional[str]:
        return self.config.principal

    def to_json(self) -> Dict[str, Any]:
        return {"name": self.namespace_id.namespace,
                "description": self.description,
                "config": self.config.to_json()}

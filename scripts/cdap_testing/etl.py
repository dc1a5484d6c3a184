#!/usr/bin/env python3

"""
This module provides what the pipeline scenarios share: building pipeline configurations,
creating the requests that deploy them, waiting until the system pipeline plugins are
available and installing plugins from the market.
"""

import json
import logging

from enum import Enum, unique
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

from cdap_testing.entities import ArtifactId, NamespaceId
from cdap_testing.faults import UnexpectedResponseFault
from cdap_testing.platform import AppRequest, ArtifactScope, ArtifactSummary, Cdap
from cdap_testing.services import TableServiceClient
from cdap_testing.tasks import wait_for_true

DATA_PIPELINE = "cdap-data-pipeline"
DATA_STREAMS = "cdap-data-streams"

BATCH_SOURCE = "batchsource"
BATCH_SINK = "batchsink"
BATCH_AGGREGATOR = "batchaggregator"
TRANSFORM = "transform"

SOURCE_DATASET = "sourceDataset"

def record_schema(name: str, fields: Dict[str, str]) -> str:
    """
    Returns the JSON text of a record schema with the given primitive-typed fields.
    """

    return json.dumps({"type": "record",
                       "name": name,
                       "fields": [{"name": field, "type": field_type} for field, field_type in fields.items()]})

DATASET_SCHEMA = record_schema("event", {"ts": "long", "ticker": "string", "num": "int", "price": "double"})
EVENT_SCHEMA = record_schema("event", {"ticker": "string", "num": "int", "price": "double"})

@unique
class Engine(Enum):
    MAPREDUCE = "mapreduce"
    SPARK = "spark"

class ETLPlugin(NamedTuple):
    name: str
    type: str
    properties: Dict[str, str]
    artifact: Optional[ArtifactSummary] = None

    def to_json(self) -> Dict[str, Any]:
        json_dict: Dict[str, Any] = {"name": self.name, "type": self.type, "properties": dict(self.properties)}
        if self.artifact is not None:
            json_dict["artifact"] = self.artifact.to_json()

        return json_dict

class ETLStage(NamedTuple):
    name: str
    plugin: ETLPlugin

    def to_json(self) -> Dict[str, Any]:
        return {"name": self.name, "plugin": self.plugin.to_json()}

class ETLBatchConfig:
    """
    The configuration of a batch pipeline: its stages, the connections between them,
    its schedule and the engine that runs it.
    """

    def __init__(self, schedule: str, engine: Engine = Engine.MAPREDUCE) -> None:
        self.schedule = schedule
        self.engine = engine
        self.stages: List[ETLStage] = []
        self.connections: List[Dict[str, str]] = []

    @staticmethod
    def builder(schedule: str) -> "ETLBatchConfig":
        return ETLBatchConfig(schedule)

    def add_stage(self, stage: ETLStage) -> "ETLBatchConfig":
        if any(existing.name == stage.name for existing in self.stages):
            raise ValueError("Duplicate stage name: {}.".format(stage.name))

        self.stages.append(stage)
        return self

    def add_connection(self, source: str, target: str) -> "ETLBatchConfig":
        names = {stage.name for stage in self.stages}
        for name in (source, target):
            if name not in names:
                raise ValueError("Unknown stage in connection: {}.".format(name))

        self.connections.append({"from": source, "to": target})
        return self

    def set_engine(self, engine: Engine) -> "ETLBatchConfig":
        self.engine = engine
        return self

    def to_json(self) -> Dict[str, Any]:
        return {"schedule": self.schedule,
                "engine": self.engine.value,
                "stages": [stage.to_json() for stage in self.stages],
                "connections": list(self.connections)}

def batch_app_request(config: ETLBatchConfig, version: str) -> AppRequest:
    return AppRequest(ArtifactSummary(DATA_PIPELINE, version, ArtifactScope.SYSTEM), config)

def streaming_app_request(config: Any, version: str) -> AppRequest:
    return AppRequest(ArtifactSummary(DATA_STREAMS, version, ArtifactScope.SYSTEM), config)

def wrangler_app_request(artifacts: Iterable[ArtifactSummary]) -> Optional[AppRequest]:
    """
    Returns a request deploying the last wrangler service artifact in `artifacts`, or None if there is none.
    """

    request = None
    for summary in artifacts:
        if "wrangler-service" in summary.name:
            request = AppRequest(summary)

    return request

def _has_plugin(cdap: Cdap, parent: ArtifactId, plugin_type: str, plugin_name: str) -> bool:
    plugins = cdap.plugin_summaries(parent, plugin_type, ArtifactScope.SYSTEM)
    return any(plugin.name == plugin_name for plugin in plugins)

def system_plugins_available(cdap: Cdap, namespace: NamespaceId, version: str) -> bool:
    """
    Checks whether the system pipeline artifacts have been extended by the plugins the scenarios use.

    Raises:
        NotFoundFault: If a parent artifact has not been added yet.

    """

    data_pipeline = namespace.artifact(DATA_PIPELINE, version)
    data_streams = namespace.artifact(DATA_STREAMS, version)

    return (_has_plugin(cdap, data_pipeline, BATCH_AGGREGATOR, "GroupByAggregate")
            and _has_plugin(cdap, data_pipeline, BATCH_SINK, "File")
            and _has_plugin(cdap, data_streams, BATCH_AGGREGATOR, "GroupByAggregate"))

def wait_for_system_plugins(cdap: Cdap,
                            namespace: NamespaceId,
                            version: str,
                            timeout: float = 300,
                            poll_interval: float = 3) -> None:
    """
    Waits until the system pipeline artifacts and their plugins are available. A missing
    parent artifact means the system artifacts are still being loaded and is retried.
    """

    logging.info("Waiting for the system pipeline plugins of version %s.", version)
    wait_for_true(lambda: system_plugins_available(cdap, namespace, version), timeout, poll_interval)

def install_plugin_from_market(cdap: Cdap, namespace: NamespaceId, package: str, plugin: str, version: str) -> None:
    """
    Installs a plugin from the market into a namespace through the UI's market forwarding endpoint.

    Args:
        cdap: The session to use.
        namespace: The namespace to install the plugin into.
        package: The name of the market package.
        plugin: The name of the plugin artifact.
        version: The version of the package and the plugin.

    """

    cdap_config = cdap.cdap_config()
    market_url = cdap_config["market.base.url"]

    plugin_json_url = "{}/packages/{}/{}/{}-{}.json".format(market_url, package, version, plugin, version)
    plugin_json = cdap.client.execute("GET", plugin_json_url).json()
    parents = [str(parent) for parent in plugin_json["parents"]]

    source = "packages/{}/{}/{}-{}.jar".format(package, version, plugin, version)
    target = "v3/namespaces/{}/artifacts/{}".format(namespace.namespace, plugin)

    cluster = cdap.client.cluster
    ui_port = cdap_config["dashboard.ssl.bind.port" if cluster.ssl else "dashboard.bind.port"]
    # The UI is assumed to run on the router host.
    url = "{}://{}:{}/forwardMarketToCdap".format(cluster.scheme, cluster.host, ui_port)

    logging.info("Installing plugin %s %s from market package %s.", plugin, version, package)
    response = cdap.client.execute("GET", url,
                                   headers={"Artifact-Extends": "/".join(parents), "Artifact-Version": version},
                                   params={"source": source, "target": target})
    if response.status != 200:
        raise UnexpectedResponseFault("Installing plugin {} from the market failed.".format(plugin),
                                      response.status,
                                      response.text())

def ingest_data(table_service: TableServiceClient, namespace: NamespaceId, dataset: str = SOURCE_DATASET) -> None:
    """
    Writes the sample trade "AAPL|10|500.32" with a dummy timestamp to the source table.
    """

    table_service.put_row(namespace, dataset, "1", {"ts": 234, "ticker": "AAPL", "num": 10, "price": 500.32})

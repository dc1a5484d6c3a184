#!/usr/bin/env python3

"""
This module provides clients for the HTTP handlers of the services deployed by the test applications.
They are used to act on datasets from inside a running program, where the program's owner rather
than the calling user is subject to authorization.
"""

from typing import Any, Dict, List, Optional, Union

from cdap_testing.client import RestClient
from cdap_testing.entities import NamespaceId

Value = Union[str, int, float]

class ServiceClient:
    """
    Sends requests relative to the base URL of a running service.
    """

    def __init__(self, client: RestClient, service_url: str) -> None:
        self.client = client
        self.service_url = service_url if service_url.endswith("/") else service_url + "/"

    def call(self, method: str, path: str, body: Any = None, params: Optional[Dict[str, Any]] = None) -> Any:
        response = self.client.execute(method, self.service_url + path.lstrip("/"), body=body, params=params)
        return response.json() if response.body else None

class TableServiceClient(ServiceClient):
    """
    The client of the dataset service of the table dataset application, which exposes
    `put`, `get` and `incrementAndGet` on a named table in any namespace.
    """

    def _command(self, namespace: NamespaceId, dataset: str, command: str, body: Dict[str, Any]) -> Any:
        path = "namespaces/{}/datasets/{}/{}".format(namespace.namespace, dataset, command)
        return self.call("POST", path, body)

    def put(self, namespace: NamespaceId, dataset: str, row: str, column: str, value: Value) -> None:
        self._command(namespace, dataset, "put", {"row": row, "columns": {column: value}})

    def get(self, namespace: NamespaceId, dataset: str, row: str, column: str) -> Any:
        result = self._command(namespace, dataset, "get", {"row": row, "columns": [column]}) or {}
        return result.get(column)

    def increment_and_get(self, namespace: NamespaceId, dataset: str, row: str, column: str, amount: int = 1) -> int:
        result = self._command(namespace, dataset, "incrementAndGet", {"row": row, "columns": {column: amount}}) or {}
        return int(result.get(column, 0))

    def put_row(self, namespace: NamespaceId, dataset: str, row: str, columns: Dict[str, Value]) -> None:
        self._command(namespace, dataset, "put", {"row": row, "columns": columns})

TPFS_PATH = "tpfs"

class TpfsServiceClient(ServiceClient):
    """
    The client of the service that reads the records of a time-partitioned fileset in a time range.
    """

    def records(self, tpfs_name: str, start_time: int, end_time: int) -> List[Dict[str, Any]]:
        return self.call("GET", "{}/{}".format(TPFS_PATH, tpfs_name),
                         params={"startTime": start_time, "endTime": end_time}) or []

class WikipediaServiceClient(ServiceClient):
    """
    The client of the service serving the results of the Wikipedia analyses: the topics found
    by the clustering program and the top words found by the top-N program.
    """

    def topics(self) -> List[int]:
        return self.call("GET", "v1/functions/lda/topics") or []

    def topic(self, topic: int) -> List[Dict[str, Any]]:
        """
        Returns the terms of a topic with their weights.

        Raises:
            NotFoundFault: If the topic does not exist.

        """

        return self.call("GET", "v1/functions/lda/topics/{}".format(topic)) or []

    def top_words(self) -> Dict[str, int]:
        words: Dict[str, int] = {}
        for entry in self.call("GET", "v1/functions/topn/words") or []:
            words.update(entry)

        return words

#!/usr/bin/env python3

"""
This module provides a generic REST client for the CDAP router. Instead of one client class
per kind of entity, requests are described by a method and a path template, and unsuccessful
responses are turned into the faults of `cdap_testing.faults`.
"""

import base64
import json
import logging
import socket

from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Union

import urllib.error
import urllib.parse
import urllib.request

from cdap_testing.config import ClusterConfig
from cdap_testing.faults import (DEFAULT_NO_PRIVILEGE_MARKERS, ConnectivityFault, UnauthenticatedFault,
                                 classify_response)

API_VERSION = "v3"

class HttpResponse(NamedTuple):
    status: int
    body: bytes
    headers: Dict[str, str]

    def text(self) -> str:
        return self.body.decode()

    def json(self) -> Any:
        return json.loads(self.text()) if self.body else None

Body = Union[None, bytes, str, Dict[str, Any], List[Any]]

def _encode_body(body: Body, headers: Dict[str, str]) -> Optional[bytes]:
    if body is None:
        return None

    if isinstance(body, bytes):
        return body

    if isinstance(body, str):
        return body.encode()

    headers.setdefault("Content-Type", "application/json")
    return json.dumps(body).encode()

def _send(request: urllib.request.Request,
          timeout: float,
          no_privilege_markers: Iterable[str]) -> HttpResponse:
    logging.debug("%s %s", request.get_method(), request.full_url)
    try:
        with urllib.request.urlopen(request, timeout=timeout) as connection:
            response = HttpResponse(connection.status, connection.read(), dict(connection.headers.items()))
    except urllib.error.HTTPError as error:
        body = error.read().decode(errors="replace")
        logging.debug("%s %s returned %s.", request.get_method(), request.full_url, error.code)
        fault_class = classify_response(error.code, body, no_privilege_markers)
        raise fault_class("{} {} failed.".format(request.get_method(), request.full_url),
                          error.code,
                          body) from error
    except (urllib.error.URLError, socket.timeout, ConnectionError) as error:
        raise ConnectivityFault("Could not reach {}: {}.".format(request.full_url, error)) from error

    logging.debug("%s %s returned %s.", request.get_method(), request.full_url, response.status)
    return response

def fetch_access_token(cluster: ClusterConfig, username: str, password: str) -> str:
    """
    Obtains an access token for the given user from the authentication server.

    Args:
        cluster: The cluster configuration.
        username: The name of the user.
        password: The password of the user.

    Returns:
        The access token.

    Raises:
        UnauthenticatedFault: If the credentials are rejected.

    """

    credentials = base64.b64encode("{}:{}".format(username, password).encode()).decode()
    request = urllib.request.Request("{}/token".format(cluster.auth_url),
                                     headers={"Authorization": "Basic {}".format(credentials)},
                                     method="GET")
    response = _send(request, cluster.request_timeout, [])

    token = (response.json() or {}).get("access_token")
    if not token:
        raise UnauthenticatedFault("No access token returned for user {}.".format(username),
                                   response.status,
                                   response.text())

    logging.info("Fetched access token for user %s.", username)
    return token

class RestClient:
    """
    A REST client that attaches an access token to every request sent to the CDAP router.
    """

    def __init__(self,
                 cluster: ClusterConfig,
                 access_token: Optional[str] = None,
                 no_privilege_markers: Iterable[str] = DEFAULT_NO_PRIVILEGE_MARKERS) -> None:
        self.cluster = cluster
        self.access_token = access_token
        self.no_privilege_markers = list(no_privilege_markers)

    def api_url(self, path: str) -> str:
        """
        Returns the absolute URL of a path relative to the versioned API root.
        """

        return "{}/{}/{}".format(self.cluster.router_url, API_VERSION, path.lstrip("/"))

    def execute(self,
                method: str,
                url: str,
                body: Body = None,
                headers: Optional[Mapping[str, str]] = None,
                params: Optional[Mapping[str, Any]] = None) -> HttpResponse:
        """
        Sends a request to an absolute URL.

        Args:
            method: The HTTP method.
            url: The absolute URL.
            body: The request body. Dictionaries and lists are sent as JSON.
            headers: Additional request headers.
            params: Query parameters to append to the URL.

        Returns:
            The response, if its status code is 2xx.

        Raises:
            CdapFault: The fault matching the unsuccessful response, or a `ConnectivityFault`.

        """

        all_headers = dict(headers or {})
        if self.access_token is not None:
            all_headers["Authorization"] = "Bearer {}".format(self.access_token)

        if params:
            url = "{}?{}".format(url, urllib.parse.urlencode(params))

        data = _encode_body(body, all_headers)
        request = urllib.request.Request(url, data=data, headers=all_headers, method=method)

        return _send(request, self.cluster.request_timeout, self.no_privilege_markers)

    def request(self,
                method: str,
                template: str,
                body: Body = None,
                headers: Optional[Mapping[str, str]] = None,
                params: Optional[Mapping[str, Any]] = None,
                **path_values: Any) -> Any:
        """
        Sends a request to a path template under the versioned API root and decodes the JSON response.

        Args:
            method: The HTTP method.
            template: A path template such as "namespaces/{namespace}/streams/{stream}".
            body: The request body. Dictionaries and lists are sent as JSON.
            headers: Additional request headers.
            params: Query parameters.
            path_values: The values of the template placeholders. They are URL-quoted.

        Returns:
            The decoded JSON body, the text body if it is not JSON, or None if it is empty.

        """

        quoted = {key: urllib.parse.quote(str(value), safe="") for key, value in path_values.items()}
        response = self.execute(method, self.api_url(template.format(**quoted)), body, headers, params)

        if not response.body:
            return None

        try:
            return response.json()
        except ValueError:
            return response.text()

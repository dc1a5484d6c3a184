#!/usr/bin/env python3

"""
This module provides the configuration of an integration test run: where the cluster is,
which users take part in the scenarios and how long to wait for things.

The configuration is read from a YAML file, for example:

    cluster:
      host: cdap.example.com
      router_port: 11015
      auth_port: 10009
      ssl: false
    users:
      admin: cdapitn
      superuser: cdap
      password_suffix: password
    authorization:
      cache:
        staleness_seconds: 12
    timeouts:
      program_start_stop: 120
    artifacts:
      PurchaseApp: /path/to/PurchaseApp-1.0.0.jar

"""

import logging
import os

from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional

import yaml

from cdap_testing.entities import NamespaceConfig, NamespaceId, NamespaceMeta
from cdap_testing.faults import DEFAULT_NO_PRIVILEGE_MARKERS, ConfigurationFault

CONFIG_ENV_VARIABLE = "CDAP_ITN_CONFIG"

class ClusterConfig(NamedTuple):
    host: str
    router_port: int = 11015
    auth_port: int = 10009
    ssl: bool = False
    request_timeout: float = 60.0

    @property
    def scheme(self) -> str:
        return "https" if self.ssl else "http"

    @property
    def router_url(self) -> str:
        return "{}://{}:{}".format(self.scheme, self.host, self.router_port)

    @property
    def auth_url(self) -> str:
        return "{}://{}:{}".format(self.scheme, self.host, self.auth_port)

class UsersConfig(NamedTuple):
    admin: str = "cdapitn"
    superuser: str = "cdap"
    password_suffix: str = "password"
    passwords: Dict[str, str] = {}

    def password_of(self, user: str) -> str:
        """
        Returns the password of `user`. The passwords of the admin user and the superuser are their names; other users
        have their name followed by the password suffix unless configured explicitly.
        """

        if user in self.passwords:
            return self.passwords[user]

        if user in (self.admin, self.superuser):
            return user

        return user + self.password_suffix

class CacheConfig(NamedTuple):
    invalidate_path: Optional[str] = None
    staleness_seconds: float = 0.0

class TimeoutsConfig(NamedTuple):
    program_start_stop: float = 120.0
    program_first_processed: float = 240.0
    pipeline_run: float = 600.0
    system_artifacts: float = 300.0
    poll_interval: float = 1.0

class ItnConfig(NamedTuple):
    """
    The whole configuration of an integration test run.
    """

    cluster: ClusterConfig
    users: UsersConfig = UsersConfig()
    cache: CacheConfig = CacheConfig()
    no_privilege_markers: List[str] = DEFAULT_NO_PRIVILEGE_MARKERS
    timeouts: TimeoutsConfig = TimeoutsConfig()
    artifacts: Dict[str, Path] = {}
    namespaces: Dict[str, NamespaceMeta] = {}

    def artifact_jar(self, name: str) -> Path:
        """
        Returns the path of the jar file of the artifact called `name`.

        Raises:
            ConfigurationFault: If the artifact is not configured.

        """

        if name not in self.artifacts:
            raise ConfigurationFault("No jar file configured for artifact {}.".format(name))

        return self.artifacts[name]

    def namespace_meta(self, name: str) -> NamespaceMeta:
        """
        Returns the configured metadata of the namespace called `name`, or plain
        metadata without impersonation if the namespace is not configured.
        """

        return self.namespaces.get(name, NamespaceMeta(NamespaceId(name)))

def _section(raw: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = raw.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigurationFault("The configuration section '{}' must be a mapping.".format(key))

    return value

def _namespace_meta(name: str, raw: Dict[str, Any]) -> NamespaceMeta:
    namespace_config = NamespaceConfig(principal=raw.get("principal"),
                                       keytab_uri=raw.get("keytab_uri"),
                                       scheduler_queue_name=raw.get("scheduler_queue_name"),
                                       root_directory=raw.get("root_directory"),
                                       hbase_namespace=raw.get("hbase_namespace"),
                                       hive_database=raw.get("hive_database"))
    return NamespaceMeta(NamespaceId(name), raw.get("description", ""), namespace_config)

def config_from_dict(raw: Dict[str, Any]) -> ItnConfig:
    """
    Builds an `ItnConfig` from the parsed YAML document.

    Args:
        raw: The parsed YAML document.

    Returns:
        The configuration.

    Raises:
        ConfigurationFault: If a required key is missing or a section has the wrong shape.

    """

    cluster = _section(raw, "cluster")
    if "host" not in cluster:
        raise ConfigurationFault("The configuration key 'cluster.host' is required.")

    cluster_config = ClusterConfig(host=str(cluster["host"]),
                                   router_port=int(cluster.get("router_port", 11015)),
                                   auth_port=int(cluster.get("auth_port", 10009)),
                                   ssl=bool(cluster.get("ssl", False)),
                                   request_timeout=float(cluster.get("request_timeout", 60.0)))

    users = _section(raw, "users")
    users_config = UsersConfig(admin=str(users.get("admin", "cdapitn")),
                               superuser=str(users.get("superuser", "cdap")),
                               password_suffix=str(users.get("password_suffix", "password")),
                               passwords=dict(users.get("passwords") or {}))

    authorization = _section(raw, "authorization")
    cache = _section(authorization, "cache")
    cache_config = CacheConfig(invalidate_path=cache.get("invalidate_path"),
                               staleness_seconds=float(cache.get("staleness_seconds", 0.0)))
    markers = list(authorization.get("no_privilege_markers") or DEFAULT_NO_PRIVILEGE_MARKERS)

    timeouts = _section(raw, "timeouts")
    timeouts_config = TimeoutsConfig(**{key: float(value) for key, value in timeouts.items()
                                        if key in TimeoutsConfig._fields})

    artifacts = {name: Path(str(path)).expanduser() for name, path in _section(raw, "artifacts").items()}

    namespaces = {name: _namespace_meta(name, value or {})
                  for name, value in _section(raw, "namespaces").items()}

    return ItnConfig(cluster_config, users_config, cache_config, markers, timeouts_config, artifacts, namespaces)

def load_config(path: Path) -> ItnConfig:
    """
    Loads the configuration from a YAML file.

    Args:
        path: The path to the YAML file.

    Returns:
        The configuration.

    """

    resolved = path.expanduser().resolve()
    logging.info("Loading the integration test configuration from %s.", resolved)

    text: str
    with resolved.open() as config_file:
        text = config_file.read()

    raw = yaml.safe_load(text) or {}
    if not isinstance(raw, dict):
        raise ConfigurationFault("The configuration file {} must contain a mapping.".format(resolved))

    return config_from_dict(raw)

def config_from_environment() -> Optional[ItnConfig]:
    """
    Loads the configuration from the file named by the `CDAP_ITN_CONFIG` environment variable.

    Returns:
        The configuration, or None if the environment variable is not set.

    """

    path = os.environ.get(CONFIG_ENV_VARIABLE)
    if not path:
        return None

    return load_config(Path(path))

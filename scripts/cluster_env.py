#!/usr/bin/env python3

"""
This module provides functions that can be used to interact with a dockerised CDAP sandbox from the local host.
"""

from pathlib import Path

import logging
import shutil
import subprocess

from typing import List, Optional

import docker

from cdap_testing.client import RestClient
from cdap_testing.config import ClusterConfig
from cdap_testing.faults import (ConfigurationFault, ConnectivityFault, TimeoutFault, UnauthenticatedFault,
                                 UnexpectedResponseFault)
from cdap_testing.tasks import wait_for_true

SANDBOX_SERVICE = "cdap"
SANDBOX_HOME = "/opt/cdap/sandbox"

SANDBOX_COMMANDS = ["docker", "docker-compose"]
DOCKER_DAEMON = "docker daemon"

class DockerSubprocessException(Exception):
    """
    An exception that is thrown when subprocesses related to Docker fail.
    """

    def __init__(self,
                 message: str,
                 process_result: subprocess.CompletedProcess) -> None:
        """
        Creates a `DockerSubprocessException`.

        Args:
            message: A user-defined message - it can be used to describe the concrete situation.
            process_result: The `subprocess.CompletedProcess` object returned by the process running function.

        """

        self.message = message
        self.returncode = process_result.returncode
        self.stdout = process_result.stdout
        self.stderr = process_result.stderr

        exception_message = "{}\nReturn code:\n{}\nStdout:\n{}\nStderr:\n{}".format(self.message,
                                                                                    self.returncode,
                                                                                    self.stdout,
                                                                                    self.stderr)
        super().__init__(exception_message)

def _run(command: List[str], message: str, cwd: Optional[Path] = None) -> None:
    process_result = subprocess.run(command, cwd=cwd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)

    if process_result.returncode != 0:
        raise DockerSubprocessException(message, process_result)

class DockerError(ConfigurationFault):
    """
    Raised when the local host lacks something the dockerised sandbox needs.
    """

    def __init__(self, missing: List[str]) -> None:
        self.missing = missing
        super().__init__("The dockerised sandbox cannot run on this host, missing: {}.".format(", ".join(missing)))

def is_docker_daemon_running() -> bool:
    try:
        return bool(docker.from_env().ping())
    except docker.errors.DockerException:
        return False

def missing_sandbox_prerequisites(search_path: Optional[str] = None) -> List[str]:
    """
    Lists what is missing to run the sandbox: the `docker` and `docker-compose` commands and a running docker daemon.

    Args:
        search_path: The directories to look for the commands in, by default those of the `PATH` variable.

    Returns:
        The missing prerequisites; an empty list if the sandbox can be started.

    """

    missing = [command for command in SANDBOX_COMMANDS if shutil.which(command, path=search_path) is None]

    # Without the docker command the daemon is not looked for.
    if "docker" not in missing and not is_docker_daemon_running():
        missing.append(DOCKER_DAEMON)

    return missing

def ensure_sandbox_prerequisites(daemon_timeout: float = 60,
                                 poll_interval: float = 2,
                                 search_path: Optional[str] = None) -> None:
    """
    Checks that the sandbox can be started. If only the daemon is missing, it is given
    `daemon_timeout` seconds to come up, as it may still be starting.

    Raises:
        DockerError: If a prerequisite is missing.

    """

    missing = missing_sandbox_prerequisites(search_path)
    if missing == [DOCKER_DAEMON]:
        logging.info("Waiting for the docker daemon to start.")
        try:
            wait_for_true(is_docker_daemon_running, daemon_timeout, poll_interval, retry_on=())
        except TimeoutFault as fault:
            raise DockerError(missing) from fault
    elif missing:
        error = DockerError(missing)
        logging.error(error.message)
        raise error

    logging.info("Docker, docker-compose and the docker daemon are available.")

def get_container_of_service(service_name: str) -> docker.models.containers.Container:
    """
    Returns the first running container whose name contains `service_name`.

    Raises:
        LookupError: If there is no such container.

    """

    docker_client = docker.from_env()

    filters = {"name" : ".*{}.*".format(service_name)}
    containers = docker_client.containers.list(filters=filters)
    if not containers:
        raise LookupError("No running container found for service {}.".format(service_name))

    return containers[0]

def get_cdap_sandbox() -> docker.models.containers.Container:
    """
    Returns the container running the CDAP sandbox.
    """

    return get_container_of_service(SANDBOX_SERVICE)

def docker_compose_up(directory: Path) -> None:
    """
    Starts a docker-compose cluster.

    Args:
        directory: The docker-compose directory in which the docker-compose.yaml file
            and any additional resources are located.

    """

    logging.info("Starting the dockerised sandbox.")
    _run(["docker-compose", "up", "-d"], "Error: `docker-compose up` failed.", directory.expanduser().resolve())

def docker_compose_down(directory: Path) -> None:
    """
    Brings down a docker-compose cluster.

    Args:
        directory: The docker-compose directory in which the docker-compose.yaml file
            and any additional resources are located.

    """

    logging.info("Stopping the dockerised sandbox.")
    _run(["docker-compose", "down"], "Error: `docker-compose down` failed.", directory.expanduser().resolve())

def docker_cp_to_container(container_name: str, source: str, dest: str) -> None:
    """
    Copies a file or directory from the local file system to a running docker container.

    Args:
        container_name: The name of the docker container to copy to.
        source: The path on the local file system of the source file or directory that should be copied.
        dest: The path on the container's file system to which the source should be copied.

    """

    _run(["docker", "cp", source, "{}:{}".format(container_name, dest)],
         "Error: docker copy to container failed.")

def docker_cp_from_container(container_name: str, source: str, dest: str) -> None:
    """
    Copies a file or directory from a running docker container to the local file system.

    Args:
        container_name: The name of the docker container to copy from.
        source: The path on the file system of the container of the source file or directory that should be copied.
        dest: The path on the local file system to which the source should be copied.

    """

    _run(["docker", "cp", "{}:{}".format(container_name, source), dest],
         "Error: docker copy from container failed.")

def copy_cdap_logs(sandbox_name: str, output: Path) -> None:
    """
    Copies the log directory of the CDAP sandbox to the local file system.

    Args:
        sandbox_name: The name of the sandbox container.
        output: The path on the local file system to which the logs will be copied.

    """

    logging.info("Copying the CDAP logs to %s.", output)

    output.parent.mkdir(parents=True, exist_ok=True)
    docker_cp_from_container(sandbox_name, "{}/logs".format(SANDBOX_HOME), str(output))

def is_sandbox_up(cluster: ClusterConfig) -> bool:
    try:
        RestClient(cluster).request("GET", "version")
    except UnauthenticatedFault:
        # The router answers, it only asks for a token.
        return True
    except UnexpectedResponseFault as fault:
        if fault.status == 503:
            return False
        raise

    return True

def wait_for_sandbox(cluster: ClusterConfig, timeout: float = 600, poll_interval: float = 5) -> None:
    """
    Waits until the router of the sandbox answers version requests. Connection failures
    are expected while the sandbox is starting.

    Args:
        cluster: The configuration of the sandbox.
        timeout: The maximal time to wait, in seconds.
        poll_interval: The time between attempts, in seconds.

    """

    logging.info("Waiting for the CDAP sandbox at %s.", cluster.router_url)
    wait_for_true(lambda: is_sandbox_up(cluster), timeout, poll_interval, retry_on=(ConnectivityFault,))
    logging.info("The CDAP sandbox is up.")

#!/usr/bin/env python3

"""
This module provides managers to start, stop and observe the programs of a deployed application.
Waiting for a program to reach a state is done by polling the cluster with `cdap_testing.tasks`.
"""

import logging

from enum import Enum, unique
from typing import Any, Dict, List, Optional

from cdap_testing.client import RestClient
from cdap_testing.entities import ApplicationId, ProgramId, ProgramType
from cdap_testing.faults import NotFoundFault, UnexpectedResponseFault
from cdap_testing.tasks import wait_for, wait_for_true

PROGRAM_TEMPLATE = "namespaces/{namespace}/apps/{app}/{type}/{program}"

@unique
class ProgramRunStatus(Enum):
    PENDING = "PENDING"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    SUSPENDED = "SUSPENDED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    KILLED = "KILLED"

class ProgramManager:
    """
    Controls one program of a deployed application.
    """

    def __init__(self, client: RestClient, program_id: ProgramId, poll_interval: float = 1.0) -> None:
        self.client = client
        self.program_id = program_id
        self.poll_interval = poll_interval

    def _request(self, method: str, suffix: str = "", **kwargs: Any) -> Any:
        program = self.program_id
        return self.client.request(method,
                                   PROGRAM_TEMPLATE + suffix,
                                   namespace=program.namespace,
                                   app=program.application,
                                   type=program.type.path_segment,
                                   program=program.program,
                                   **kwargs)

    def start(self, args: Optional[Dict[str, str]] = None) -> None:
        logging.info("Starting program %s with arguments %s.", self.program_id.path, args)
        self._request("POST", "/start", body=args or {})

    def stop(self) -> None:
        logging.info("Stopping program %s.", self.program_id.path)
        self._request("POST", "/stop")

    def status(self) -> str:
        response = self._request("GET", "/status")
        return response["status"]

    def runs(self, status: Optional[ProgramRunStatus] = None) -> List[Dict[str, Any]]:
        """
        Returns the run records of the program, optionally only those in the given status.
        """

        params = {"status": status.value.lower()} if status is not None else None
        records = self._request("GET", "/runs", params=params) or []

        if status is None:
            return records

        return [record for record in records if record.get("status") == status.value]

    def wait_for_status(self, status: str, timeout: float) -> None:
        """
        Waits until the program reports the given status, such as "RUNNING" or "STOPPED".
        """

        wait_for(status, self.status, timeout, self.poll_interval)

    def wait_for_run(self, status: ProgramRunStatus, timeout: float) -> None:
        """
        Waits until the program has at least one run in the given status.

        Args:
            status: The run status to wait for.
            timeout: The maximal time to wait, in seconds.

        Raises:
            TimeoutFault: If no such run appears in time.

        """

        logging.info("Waiting for a %s run of %s.", status.value, self.program_id.path)
        wait_for_true(lambda: len(self.runs(status)) > 0, timeout, self.poll_interval)

    def wait_for_runs(self, status: ProgramRunStatus, count: int, timeout: float) -> None:
        """
        Waits until the program has exactly `count` runs in the given status.

        Args:
            status: The run status to count.
            count: The expected number of runs.
            timeout: The maximal time to wait, in seconds.

        Raises:
            TimeoutFault: If the number of runs does not reach `count` in time.

        """

        logging.info("Waiting for %s %s run(s) of %s.", count, status.value, self.program_id.path)
        wait_for(count, lambda: len(self.runs(status)), timeout, self.poll_interval)

class ServiceManager(ProgramManager):
    def is_available(self) -> bool:
        try:
            self._request("GET", "/available")
        except UnexpectedResponseFault as fault:
            if fault.status == 503:
                return False
            raise

        return True

    def service_url(self, timeout: float) -> str:
        """
        Waits until the service is available and returns the base URL of its handler methods.

        Args:
            timeout: The maximal time to wait, in seconds.

        Returns:
            The base URL of the service methods, ending with a slash.

        """

        wait_for_true(self.is_available, timeout, self.poll_interval, retry_on=(NotFoundFault,))

        program = self.program_id
        path = "namespaces/{}/apps/{}/services/{}/methods/".format(program.namespace,
                                                                   program.application,
                                                                   program.program)
        return self.client.api_url(path)

class WorkflowManager(ProgramManager):
    pass

class ApplicationManager:
    """
    Gives access to the programs of a deployed application.
    """

    def __init__(self, client: RestClient, app_id: ApplicationId, poll_interval: float = 1.0) -> None:
        self.client = client
        self.app_id = app_id
        self.poll_interval = poll_interval

    def program_manager(self, program_id: ProgramId) -> ProgramManager:
        if program_id.type == ProgramType.SERVICE:
            return ServiceManager(self.client, program_id, self.poll_interval)

        if program_id.type == ProgramType.WORKFLOW:
            return WorkflowManager(self.client, program_id, self.poll_interval)

        return ProgramManager(self.client, program_id, self.poll_interval)

    def service_manager(self, name: str) -> ServiceManager:
        return ServiceManager(self.client, self.app_id.service(name), self.poll_interval)

    def workflow_manager(self, name: str) -> WorkflowManager:
        return WorkflowManager(self.client, self.app_id.workflow(name), self.poll_interval)

    def start_program(self, program_id: ProgramId, args: Optional[Dict[str, str]] = None) -> ProgramManager:
        manager = self.program_manager(program_id)
        manager.start(args)
        return manager

#!/usr/bin/env python3

"""
This module provides the exceptions raised when talking to the CDAP cluster and
an `Outcome` type that captures either the value or the fault of an operation.
"""

from typing import Any, Callable, Generic, Iterable, Optional, Type, TypeVar

T = TypeVar("T")

class CdapFault(Exception):
    """
    The base class of the faults raised by the integration testing harness.
    """

    def __init__(self,
                 message: str,
                 status: Optional[int] = None,
                 body: Optional[str] = None) -> None:
        """
        Creates a `CdapFault`.

        Args:
            message: A message describing the concrete situation.
            status: The HTTP status code of the response that caused the fault, if any.
            body: The body of the response that caused the fault, if any.

        """

        self.message = message
        self.status = status
        self.body = body

        exception_message = message
        if status is not None:
            exception_message = "{}\nStatus: {}\nBody:\n{}".format(message, status, body)

        super().__init__(exception_message)

    @property
    def kind(self) -> str:
        """
        Returns the name of the fault category, for example "AuthorizationFault".
        """

        return type(self).__name__

class TimeoutFault(CdapFault):
    """
    Raised when a condition did not hold within the allotted time.
    """

    def __init__(self, message: str, last_observed: Any, elapsed: float) -> None:
        self.last_observed = last_observed
        self.elapsed = elapsed
        super().__init__("{} Elapsed: {:.3f}s. Last observed: {!r}.".format(message, elapsed, last_observed))

class AuthorizationFault(CdapFault):
    """
    Raised when the cluster rejects an operation because of insufficient privileges.
    """

class UnauthenticatedFault(CdapFault):
    """
    Raised when the cluster does not accept the credentials or the access token.
    """

class NotFoundFault(CdapFault):
    """
    Raised when a referenced entity does not exist (yet).
    """

class ConflictFault(CdapFault):
    """
    Raised when an entity that is being created already exists.
    """

class BadRequestFault(CdapFault):
    """
    Raised when the cluster rejects a malformed request.
    """

class UnexpectedResponseFault(CdapFault):
    """
    Raised for any other unsuccessful response.
    """

class ConnectivityFault(CdapFault):
    """
    Raised when the cluster cannot be reached at all.
    """

class ConfigurationFault(CdapFault):
    """
    Raised when the harness is given invalid parameters or configuration.
    """

_STATUS_FAULTS = {
    400: BadRequestFault,
    401: UnauthenticatedFault,
    403: AuthorizationFault,
    404: NotFoundFault,
    409: ConflictFault,
}

DEFAULT_NO_PRIVILEGE_MARKERS = ["is not authorized to perform",
                                "does not have privileges to access"]

def classify_response(status: int, body: str, no_privilege_markers: Iterable[str]) -> Type[CdapFault]:
    """
    Determines the fault class of an unsuccessful response.

    Programs running inside the cluster report authorization failures of their own
    dataset calls as server errors, so the body is also checked for the markers.

    Args:
        status: The HTTP status code of the response.
        body: The body of the response.
        no_privilege_markers: Phrases that identify an authorization failure in a response body.

    Returns:
        The `CdapFault` subclass that should be raised for the response.

    """

    if status == 403:
        return AuthorizationFault

    lowered = body.lower()
    if status != 401 and any(marker.lower() in lowered for marker in no_privilege_markers):
        return AuthorizationFault

    return _STATUS_FAULTS.get(status, UnexpectedResponseFault)

class Outcome(Generic[T]):
    """
    The result of an operation against the cluster: either a value or a fault.
    """

    def __init__(self, value: Optional[T] = None, fault: Optional[CdapFault] = None) -> None:
        self.value = value
        self.fault = fault

    @staticmethod
    def attempt(operation: Callable[[], T]) -> "Outcome[T]":
        """
        Runs `operation`, capturing a `CdapFault` instead of raising it.
        Other exceptions are not captured.

        Args:
            operation: The operation to run.

        Returns:
            An `Outcome` holding the value or the fault of the operation.

        """

        try:
            return Outcome(value=operation())
        except CdapFault as fault:
            return Outcome(fault=fault)

    @property
    def succeeded(self) -> bool:
        return self.fault is None

    @property
    def fault_kind(self) -> Optional[str]:
        return self.fault.kind if self.fault is not None else None

    def is_fault(self, fault_class: Type[CdapFault]) -> bool:
        return isinstance(self.fault, fault_class)

    def unwrap(self) -> T:
        """
        Returns the value, or raises the captured fault.
        """

        if self.fault is not None:
            raise self.fault

        return self.value # type: ignore

    def __repr__(self) -> str:
        if self.fault is not None:
            return "Outcome(fault={}: {})".format(self.fault.kind, self.fault.message)

        return "Outcome(value={!r})".format(self.value)

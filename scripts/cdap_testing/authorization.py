#!/usr/bin/env python3

"""
This module provides the model the authorization scenarios use to declare which principal
holds which privileges, to change those privileges during a scenario and to check that the
cluster allows or denies operations accordingly.

The cluster owns the privileges; the model only sends grant and revoke requests, remembers
them so that they can be cleaned up and inspects the outcome of the operations it runs.
"""

import logging
import time

from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple, TypeVar

from cdap_testing.client import RestClient, fetch_access_token
from cdap_testing.config import ItnConfig
from cdap_testing.entities import Action, EntityId, NamespaceId, NamespaceMeta, Principal
from cdap_testing.faults import AuthorizationFault, CdapFault, NotFoundFault, Outcome
from cdap_testing.platform import Cdap

T = TypeVar("T")

Operation = Callable[[Cdap], T]

class ExpectationError(AssertionError):
    """
    Raised when the cluster allows an operation that should be denied or the other way around.
    """

class SessionFactory:
    """
    Creates authenticated `Cdap` sessions for the users of a scenario, fetching one access token per user.
    """

    def __init__(self, config: ItnConfig) -> None:
        self.config = config
        self._sessions: Dict[str, Cdap] = {}

    def session(self, user: str) -> Cdap:
        if user not in self._sessions:
            token = fetch_access_token(self.config.cluster, user, self.config.users.password_of(user))
            client = RestClient(self.config.cluster, token, self.config.no_privilege_markers)
            self._sessions[user] = Cdap(client, self.config.timeouts.poll_interval)

        return self._sessions[user]

    def admin(self) -> Cdap:
        return self.session(self.config.users.admin)

    def superuser(self) -> Cdap:
        """
        Returns the session of the superuser, which grants and revokes privileges and cleans up after a scenario.
        """

        return self.session(self.config.users.superuser)

class CacheInvalidation:
    """
    Makes sure the privilege caches of the cluster do not serve stale privileges to the next call.

    If the cluster exposes an invalidation endpoint, it is called; otherwise the configured
    staleness window, the time after which cached privileges expire, is waited out.
    """

    def __init__(self, client: Optional[RestClient], invalidate_path: Optional[str], staleness_seconds: float) -> None:
        self.client = client
        self.invalidate_path = invalidate_path
        self.staleness_seconds = staleness_seconds

    @staticmethod
    def from_config(config: ItnConfig, client: Optional[RestClient]) -> "CacheInvalidation":
        return CacheInvalidation(client, config.cache.invalidate_path, config.cache.staleness_seconds)

    def invalidate(self) -> None:
        if self.invalidate_path is not None and self.client is not None:
            logging.info("Invalidating the privilege cache through %s.", self.invalidate_path)
            self.client.execute("POST", self.client.api_url(self.invalidate_path))
        elif self.staleness_seconds > 0:
            logging.info("Waiting %s seconds for the privilege cache to expire.", self.staleness_seconds)
            time.sleep(self.staleness_seconds)

class AccessControlExpectations:
    """
    Declares, changes and verifies the privileges of the principals taking part in a scenario.

    Example:
        expectations.grant(Principal.user("carol"), dataset, Action.READ, Action.WRITE, Action.ADMIN)
        expectations.assert_allowed(Principal.user("carol"), dataset, Action.ADMIN,
                                    lambda cdap: cdap.create_dataset(dataset, "table"))
        expectations.revoke(Principal.user("carol"), invalidate=True)
        expectations.assert_denied(Principal.user("carol"), dataset, Action.READ,
                                   lambda cdap: cdap.dataset_exists(dataset))

    """

    def __init__(self, admin: Cdap, sessions: Callable[[str], Cdap], cache: CacheInvalidation) -> None:
        """
        Creates an `AccessControlExpectations` object.

        Args:
            admin: The session used to grant and revoke privileges and to clean up.
            sessions: A function returning the authenticated session of a user.
            cache: The way the privilege cache of the cluster is invalidated.

        """

        self.admin = admin
        self.sessions = sessions
        self.cache = cache
        self._granted: Dict[Principal, Set[Tuple[EntityId, Action]]] = {}
        self._cleanup_entities: List[EntityId] = []
        self._namespaces: List[NamespaceId] = []

    def grant(self, principal: Principal, resource: EntityId, *actions: Action, invalidate: bool = False) -> None:
        """
        Grants `actions` on `resource` to `principal`. Granting a privilege that is already held has no effect.

        Args:
            principal: The principal to grant the privileges to.
            resource: The entity the privileges are on.
            actions: The actions to grant.
            invalidate: Whether to invalidate the privilege cache afterwards.

        """

        if not actions:
            raise ValueError("At least one action must be granted.")

        self.admin.grant(principal, resource, actions)
        self._granted.setdefault(principal, set()).update((resource, action) for action in actions)

        if invalidate:
            self.invalidate_cache()

    def set_up_privileges(self, principal: Principal, privileges: Mapping[EntityId, Iterable[Action]]) -> None:
        """
        Grants all the given privileges to `principal`; they are revoked on `tear_down`.
        """

        for resource, actions in privileges.items():
            self.grant(principal, resource, *actions)

    def revoke(self,
               principal: Principal,
               resource: Optional[EntityId] = None,
               *actions: Action,
               invalidate: bool = False) -> None:
        """
        Revokes privileges from `principal`. Rejections by the cluster are raised as faults.

        Args:
            principal: The principal to revoke the privileges from.
            resource: The entity to revoke the privileges on. If None, every privilege of the principal is revoked.
            actions: The actions to revoke. If none are given, every action on `resource` is revoked.
            invalidate: Whether to invalidate the privilege cache afterwards.

        Raises:
            ValueError: If actions are given without a resource.

        """

        if resource is None and actions:
            raise ValueError("Actions can only be revoked on a given resource.")

        self.admin.revoke(principal, resource, actions or None)

        held = self._granted.get(principal, set())
        if resource is None:
            held.clear()
        elif not actions:
            held.difference_update({entry for entry in held if entry[0] == resource})
        else:
            held.difference_update((resource, action) for action in actions)

        if invalidate:
            self.invalidate_cache()

    def invalidate_cache(self) -> None:
        self.cache.invalidate()

    def granted(self, principal: Principal) -> Set[Tuple[EntityId, Action]]:
        """
        Returns the privileges granted to `principal` through this model and not revoked since.
        """

        return set(self._granted.get(principal, set()))

    def list_privileges(self, principal: Principal) -> Set[Tuple[EntityId, Action]]:
        """
        Returns the privileges of `principal` as reported by the cluster.
        """

        return {(privilege.entity, privilege.action) for privilege in self.admin.list_privileges(principal)}

    def run_as(self, principal: Principal, operation: Operation) -> Outcome:
        """
        Runs `operation` with the session of `principal` and returns its outcome.
        """

        session = self.sessions(principal.name)
        return Outcome.attempt(lambda: operation(session))

    def assert_allowed(self, principal: Principal, resource: EntityId, action: Action, operation: Operation) -> T:
        """
        Runs `operation` as `principal` and checks that it is not denied.

        Args:
            principal: The principal to run the operation as.
            resource: The entity the operation acts on.
            action: The action the operation requires.
            operation: A function receiving the principal's session.

        Returns:
            The value returned by the operation.

        Raises:
            ExpectationError: If the operation was denied.
            CdapFault: If the operation failed for another reason.

        """

        outcome = self.run_as(principal, operation)
        if outcome.is_fault(AuthorizationFault):
            raise ExpectationError("{} should be allowed to {} {}, but was denied: {}".format(
                principal.name, action.value, resource.path, outcome.fault.message)) # type: ignore

        return outcome.unwrap()

    def assert_denied(self, principal: Principal, resource: EntityId, action: Action, operation: Operation) -> None:
        """
        Runs `operation` as `principal` and checks that it fails with an authorization fault.

        Raises:
            ExpectationError: If the operation succeeded or failed with a different kind of fault.

        """

        outcome = self.run_as(principal, operation)
        if outcome.succeeded:
            raise ExpectationError("{} should not be allowed to {} {}, but the operation succeeded.".format(
                principal.name, action.value, resource.path))

        if not outcome.is_fault(AuthorizationFault):
            raise ExpectationError("{} should be denied to {} {}, but the operation failed with {}: {}".format(
                principal.name, action.value, resource.path, outcome.fault_kind, outcome.fault.message)) # type: ignore

        logging.info("%s was denied to %s %s as expected.", principal.name, action.value, resource.path)

    def create_namespace(self, principal: Principal, meta: NamespaceMeta) -> None:
        """
        Creates a namespace as `principal` and registers it for deletion on `tear_down`.
        This needs ADMIN on the namespace and, for impersonated namespaces, ADMIN on the impersonated principal.
        """

        self.sessions(principal.name).create_namespace(meta)
        self._namespaces.append(meta.namespace_id)

    def delete_namespace(self, principal: Principal, namespace: NamespaceId) -> None:
        """
        Deletes a namespace as `principal`. This needs ADMIN on the namespace and on every entity in it;
        if any is missing the cluster refuses and the namespace stays intact.
        """

        self.sessions(principal.name).delete_namespace(namespace)
        if namespace in self._namespaces:
            self._namespaces.remove(namespace)

    def register_for_cleanup(self, entity: EntityId) -> None:
        self._cleanup_entities.append(entity)

    def tear_down(self) -> None:
        """
        Deletes the registered entities and namespaces, then revokes every privilege granted through the model
        and invalidates the privilege cache.

        A failing step does not stop the later ones. The revokes and the invalidation always run;
        the first fault raised by any step is raised again at the end.
        """

        faults: List[CdapFault] = []
        try:
            for entity in reversed(self._cleanup_entities):
                self._delete_quietly(entity, faults)

            for namespace in reversed(self._namespaces):
                self._delete_quietly(namespace, faults)
        finally:
            self._cleanup_entities.clear()
            self._namespaces.clear()

            try:
                self._revoke_granted(faults)
            finally:
                self._granted.clear()
                self.invalidate_cache()

        if faults:
            raise faults[0]

    def _revoke_granted(self, faults: List[CdapFault]) -> None:
        for principal in list(self._granted):
            logging.info("Revoking the privileges of %s.", principal.name)
            for resource in {entry[0] for entry in self._granted[principal]}:
                try:
                    self.admin.revoke(principal, resource)
                except NotFoundFault:
                    logging.info("No privileges left on %s for %s.", resource.path, principal.name)
                except CdapFault as fault:
                    logging.error("Could not revoke the privileges of %s on %s: %s",
                                  principal.name, resource.path, fault.message)
                    faults.append(fault)

    def _delete_quietly(self, entity: EntityId, faults: List[CdapFault]) -> None:
        deleters = {"NAMESPACE": lambda: self.admin.delete_namespace(entity), # type: ignore
                    "DATASET": lambda: self.admin.delete_dataset(entity), # type: ignore
                    "STREAM": lambda: self.admin.delete_stream(entity), # type: ignore
                    "APPLICATION": lambda: self.admin.delete_application(entity)} # type: ignore

        deleter = deleters.get(entity.entity_type)
        if deleter is None:
            return

        try:
            deleter()
        except NotFoundFault:
            logging.info("%s was already deleted.", entity.path)
        except CdapFault as fault:
            logging.error("Could not delete %s: %s", entity.path, fault.message)
            faults.append(fault)

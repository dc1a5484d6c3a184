#!/usr/bin/env python3

# pylint: disable=missing-docstring

from pathlib import Path
from typing import Dict, List, Optional

from cdap_testing import categories
from cdap_testing.entities import Action, EntityId, KerberosPrincipalId, NamespaceId
from cdap_testing.faults import AuthorizationFault, CdapFault
from cdap_testing.platform import AppRequest, ArtifactSummary
from cdap_testing.programs import ProgramRunStatus, ServiceManager
from cdap_testing.services import TableServiceClient

from authorization_scenario import CAROL, AuthorizationScenario, user_of
from live_cluster import ARTIFACT_VERSION, TABLE_APP, TABLE_SERVICE

PURCHASE_APP = "PurchaseApp"
PURCHASE_HISTORY_STORE = "co.cask.cdap.examples.purchase.PurchaseHistoryStore"

class AppAuthorizationScenario(AuthorizationScenario):
    """
    Checks the privileges needed to deploy applications and the privileges programs need
    to use datasets, which are those of the application owner.
    """

    # The owner of the purchase application; None means the namespace principal, if any.
    app_owner: Optional[str] = None
    # The owners of the table applications in the two namespaces of the cross-namespace scenario.
    app_owner1 = "alice"
    app_owner2 = "bob"

    def setUp(self) -> None:
        super().setUp()
        self.namespace_meta1 = self.config.namespace_meta("authorization11")
        self.namespace_meta2 = self.config.namespace_meta("authorization22")

    def test_deploy_app(self) -> None:
        namespace = self.namespace_meta.namespace_id
        app_id = namespace.app(PURCHASE_APP)
        artifact = namespace.artifact(PURCHASE_APP, ARTIFACT_VERSION)
        jar_file = self.artifact_jar(PURCHASE_APP)

        # The admin creates the namespace and needs the program privileges to tear down.
        admin_privileges: Dict[EntityId, List[Action]] = {
            namespace: [Action.ADMIN],
            app_id.service("PurchaseHistoryService"): [Action.ADMIN],
            app_id.service("UserProfileService"): [Action.ADMIN],
            app_id.service("CatalogLookup"): [Action.ADMIN],
            app_id.flow("PurchaseFlow"): [Action.ADMIN],
            app_id.workflow("PurchaseHistoryWorkflow"): [Action.ADMIN],
            app_id.mr("PurchaseHistoryBuilder"): [Action.ADMIN]}

        creation_privileges: Dict[EntityId, List[Action]] = {
            namespace.dataset("frequentCustomers"): [Action.ADMIN],
            namespace.stream("purchaseStream"): [Action.ADMIN],
            namespace.dataset("userProfiles"): [Action.ADMIN],
            namespace.dataset("history"): [Action.ADMIN],
            namespace.dataset("purchases"): [Action.ADMIN],
            namespace.dataset_module(PURCHASE_HISTORY_STORE): [Action.ADMIN],
            namespace.dataset_type(PURCHASE_HISTORY_STORE): [Action.ADMIN]}

        deploy_privileges: Dict[EntityId, List[Action]] = {app_id: [Action.ADMIN], artifact: [Action.ADMIN]}

        namespace_principal = self.namespace_meta.principal
        effective_owner = self.app_owner or namespace_principal
        if namespace_principal is not None:
            admin_privileges[KerberosPrincipalId(namespace_principal)] = [Action.ADMIN]
        if effective_owner is not None:
            # The impersonated owner creates the datasets and streams of the application.
            deploy_privileges[KerberosPrincipalId(effective_owner)] = [Action.ADMIN]
            self.expectations.set_up_privileges(user_of(effective_owner), creation_privileges)
        else:
            deploy_privileges.update(creation_privileges)

        self.expectations.set_up_privileges(self.admin_user, admin_privileges)
        self.expectations.set_up_privileges(CAROL, deploy_privileges)
        self.expectations.invalidate_cache()

        self.expectations.create_namespace(self.admin_user, self.namespace_meta)

        carol = self.sessions.session(CAROL.name)
        carol.add_artifact(artifact, jar_file)
        app = carol.deploy_application(app_id, AppRequest(ArtifactSummary(PURCHASE_APP, ARTIFACT_VERSION),
                                                          None, self.app_owner))
        self.expectations.register_for_cleanup(app_id)

        # Deploying does not give carol EXECUTE on the programs.
        with self.assertRaises(CdapFault):
            app.start_program(app_id.flow("PurchaseFlow"))

    def test_deploy_app_unauthorized(self) -> None:
        namespace = self.namespace_meta.namespace_id
        artifact = namespace.artifact(PURCHASE_APP, ARTIFACT_VERSION)
        jar_file = self.artifact_jar(PURCHASE_APP)

        self.expectations.grant(self.admin_user, namespace, Action.ADMIN)
        self.grant_impersonation(self.admin_user)
        self.expectations.invalidate_cache()
        self.expectations.create_namespace(self.admin_user, self.namespace_meta)

        self.expectations.assert_denied(CAROL, artifact, Action.ADMIN,
                                        lambda cdap: cdap.add_artifact(artifact, jar_file))

    @categories.requires(categories.REQUIRES_IMPERSONATION)
    def test_dataset_in_program(self) -> None:
        dataset_name = "testReadDataset"
        namespace1 = self.namespace_meta1.namespace_id
        namespace2 = self.namespace_meta2.namespace_id
        app_id1 = namespace1.app(TABLE_APP)
        app_id2 = namespace2.app(TABLE_APP)
        dataset1 = namespace1.dataset(dataset_name)
        dataset2 = namespace2.dataset(dataset_name)
        jar_file = self.artifact_jar(TABLE_APP)

        owner1 = self.app_owner1 or self.namespace_meta1.principal
        owner2 = self.app_owner2 or self.namespace_meta2.principal
        if owner1 is None or owner2 is None:
            self.skipTest("Programs only run as their owner when impersonation is enabled.")
        user1 = user_of(owner1)
        user2 = user_of(owner2)

        # ADMIN on the services is needed to look up their URLs.
        admin_privileges: Dict[EntityId, List[Action]] = {
            namespace1: [Action.ADMIN],
            namespace2: [Action.ADMIN],
            app_id1.service(TABLE_SERVICE): [Action.EXECUTE, Action.ADMIN],
            app_id2.service(TABLE_SERVICE): [Action.EXECUTE, Action.ADMIN],
            app_id1: [Action.ADMIN],
            app_id2: [Action.ADMIN],
            namespace1.artifact(TABLE_APP, ARTIFACT_VERSION): [Action.ADMIN],
            namespace2.artifact(TABLE_APP, ARTIFACT_VERSION): [Action.ADMIN],
            KerberosPrincipalId(owner1): [Action.ADMIN],
            KerberosPrincipalId(owner2): [Action.ADMIN]}
        for meta in (self.namespace_meta1, self.namespace_meta2):
            if meta.principal is not None:
                admin_privileges[KerberosPrincipalId(meta.principal)] = [Action.ADMIN]
        self.expectations.set_up_privileges(self.admin_user, admin_privileges)

        # Each owner creates its dataset; user1 may write its own and user2 may only read it.
        self.expectations.grant(user1, dataset1, Action.ADMIN, Action.WRITE)
        self.expectations.grant(user2, dataset2, Action.ADMIN)
        self.expectations.grant(user2, dataset1, Action.READ, invalidate=True)
        self.expectations.register_for_cleanup(dataset1)
        self.expectations.register_for_cleanup(dataset2)

        self.expectations.create_namespace(self.admin_user, self.namespace_meta1)
        self.expectations.create_namespace(self.admin_user, self.namespace_meta2)

        timeout = self.config.timeouts.program_start_stop

        service1 = self._start_table_service(namespace1, jar_file, dataset_name, owner1)
        try:
            table = TableServiceClient(self.sessions.session(user1.name).client, service1.service_url(timeout))
            table.put(namespace1, dataset_name, "row", "col", 100)
        finally:
            service1.stop()
            service1.wait_for_run(ProgramRunStatus.KILLED, timeout)

        service2 = self._start_table_service(namespace2, jar_file, dataset_name, owner2)
        runs = 0
        try:
            table = TableServiceClient(self.sessions.session(user2.name).client, service2.service_url(timeout))

            self.assertEqual(100, table.get(namespace1, dataset_name, "row", "col"))
            with self.assertRaises(AuthorizationFault):
                table.put(namespace1, dataset_name, "row", "col2", "val2")
            # Incrementing needs both READ and WRITE.
            with self.assertRaises(AuthorizationFault):
                table.increment_and_get(namespace1, dataset_name, "row", "col")

            self.expectations.grant(user2, dataset1, Action.WRITE, invalidate=True)
            runs += 1
            table = self._restart(service2, runs, user2.name)

            table.put(namespace1, dataset_name, "row", "col2", "val2")
            self.assertEqual(101, table.increment_and_get(namespace1, dataset_name, "row", "col"))

            self.expectations.revoke(user2)
            self.expectations.grant(user2, dataset1, Action.WRITE, invalidate=True)
            runs += 1
            table = self._restart(service2, runs, user2.name)

            with self.assertRaises(AuthorizationFault):
                table.get(namespace1, dataset_name, "row", "col")
            with self.assertRaises(AuthorizationFault):
                table.increment_and_get(namespace1, dataset_name, "row", "col")
        finally:
            service2.stop()
            service2.wait_for_runs(ProgramRunStatus.KILLED, runs + 1, self.config.timeouts.program_first_processed)

    def _start_table_service(self, namespace: NamespaceId, jar_file: Path, dataset_name: str,
                             owner: str) -> ServiceManager:
        admin = self.sessions.admin()
        admin.add_artifact(namespace.artifact(TABLE_APP, ARTIFACT_VERSION), jar_file)
        app = admin.deploy_application(namespace.app(TABLE_APP),
                                       AppRequest(ArtifactSummary(TABLE_APP, ARTIFACT_VERSION),
                                                  {"dataset": dataset_name}, owner))
        self.expectations.register_for_cleanup(namespace.app(TABLE_APP))

        service = app.service_manager(TABLE_SERVICE)
        service.start()
        service.wait_for_run(ProgramRunStatus.RUNNING, self.config.timeouts.program_start_stop)
        return service

    def _restart(self, service: ServiceManager, killed_runs: int, user: str) -> TableServiceClient:
        """
        Restarts a service so that it picks up the changed privileges of its owner.
        """

        timeout = self.config.timeouts.program_start_stop
        service.stop()
        service.wait_for_runs(ProgramRunStatus.KILLED, killed_runs, timeout)
        service.start()
        service.wait_for_run(ProgramRunStatus.RUNNING, timeout)

        return TableServiceClient(self.sessions.session(user).client, service.service_url(timeout))

#!/usr/bin/env python3

# pylint: disable=missing-docstring

import unittest

from cdap_testing.entities import Action, NamespaceMeta, Principal
from cdap_testing.faults import AuthorizationFault, TimeoutFault
from cdap_testing.programs import ApplicationManager, ProgramRunStatus, ServiceManager, WorkflowManager
from cdap_testing.services import TableServiceClient

from fake_cdap import NS1, FakeCdapTestCase, deploy_table_app

APP = NS1.app("TableApp")
DS1 = NS1.dataset("ds1")

class TestPrograms(FakeCdapTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.admin.create_namespace(NamespaceMeta(NS1))
        self.app = deploy_table_app(self.admin)

    def test_application_is_deployed(self) -> None:
        self.assertEqual(["TableApp"], [app["name"] for app in self.admin.list_applications(NS1)])
        self.assertEqual(["TableApp"], [artifact.name for artifact in self.admin.list_artifacts(NS1)])

    def test_manager_types(self) -> None:
        self.assertIsInstance(self.app.program_manager(APP.service("TableService")), ServiceManager)
        self.assertIsInstance(self.app.program_manager(APP.workflow("DailyWorkflow")), WorkflowManager)
        self.assertIsInstance(self.app.workflow_manager("DailyWorkflow"), WorkflowManager)

    def test_start_and_stop_service(self) -> None:
        self.fake.start_delay = 0.2
        service = self.app.service_manager("TableService")
        self.assertEqual("STOPPED", service.status())

        service.start()
        self.assertEqual("STARTING", service.status())
        service.wait_for_status("RUNNING", 2)

        service.stop()
        service.wait_for_status("STOPPED", 2)
        service.wait_for_runs(ProgramRunStatus.KILLED, 1, 2)

    def test_batch_runs(self) -> None:
        self.fake.batch_duration = 0.1
        mapreduce = self.app.start_program(APP.mr("TableMapReduce"), {"output.path": "/tmp/out"})

        mapreduce.wait_for_run(ProgramRunStatus.COMPLETED, 2)
        mapreduce.start()
        mapreduce.wait_for_runs(ProgramRunStatus.COMPLETED, 2, 2)

        self.assertEqual(2, len(mapreduce.runs()))
        self.assertEqual({"output.path": "/tmp/out"}, mapreduce.runs()[0]["properties"])
        self.assertEqual([], mapreduce.runs(ProgramRunStatus.FAILED))

    def test_wait_for_run_times_out(self) -> None:
        workflow = self.app.workflow_manager("DailyWorkflow")

        with self.assertRaises(TimeoutFault):
            workflow.wait_for_run(ProgramRunStatus.COMPLETED, 0.2)

    def test_service_url(self) -> None:
        service = self.app.service_manager("TableService")
        self.assertFalse(service.is_available())

        with self.assertRaises(TimeoutFault):
            service.service_url(0.2)

        service.start()
        url = service.service_url(2)

        self.assertTrue(url.endswith("/v3/namespaces/ns1/apps/TableApp/services/TableService/methods/"))

    def test_execute_needs_privilege(self) -> None:
        alice = Principal.user("alice")
        program = APP.service("TableService")
        alice_app = self.sessions.session("alice").application_manager(APP)

        with self.assertRaises(AuthorizationFault):
            alice_app.start_program(program)

        self.admin.grant(alice, program, [Action.EXECUTE])
        alice_app.start_program(program).wait_for_status("RUNNING", 2)

class TestTableService(FakeCdapTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.admin.create_namespace(NamespaceMeta(NS1))
        self.admin.create_dataset(DS1, "table")

    def _table_service(self, app: ApplicationManager) -> TableServiceClient:
        service = app.service_manager("TableService")
        service.start()
        return TableServiceClient(self.admin.client, service.service_url(2))

    def test_put_get_increment(self) -> None:
        table = self._table_service(deploy_table_app(self.admin))

        table.put(NS1, "ds1", "row1", "name", "carol")
        self.assertEqual("carol", table.get(NS1, "ds1", "row1", "name"))
        self.assertIsNone(table.get(NS1, "ds1", "row1", "missing"))

        self.assertEqual(1, table.increment_and_get(NS1, "ds1", "row1", "count"))
        self.assertEqual(6, table.increment_and_get(NS1, "ds1", "row1", "count", 5))

    def test_program_denial_is_an_authorization_fault(self) -> None:
        table = self._table_service(deploy_table_app(self.admin, "bob/host.example.com@EXAMPLE.COM"))

        # The program runs as its owner, who may not write the dataset yet.
        with self.assertRaises(AuthorizationFault) as context:
            table.put(NS1, "ds1", "row1", "name", "bob")
        self.assertEqual(500, context.exception.status)

        self.admin.grant(Principal.user("bob"), DS1, [Action.WRITE])
        table.put(NS1, "ds1", "row1", "name", "bob")

        with self.assertRaises(AuthorizationFault):
            table.get(NS1, "ds1", "row1", "name")

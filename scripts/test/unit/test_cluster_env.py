#!/usr/bin/env python3

# pylint: disable=missing-docstring

import tempfile

import unittest

import cluster_env

from cdap_testing.faults import ConfigurationFault, TimeoutFault

from fake_cdap import USERS, FakeCdap

class TestSandboxReadiness(unittest.TestCase):
    def test_sandbox_asking_for_a_token_is_up(self) -> None:
        fake = FakeCdap(USERS).start()
        try:
            self.assertTrue(cluster_env.is_sandbox_up(fake.cluster_config()))
            cluster_env.wait_for_sandbox(fake.cluster_config(), timeout=1, poll_interval=0.05)
        finally:
            fake.stop()

    def test_unreachable_sandbox_times_out(self) -> None:
        fake = FakeCdap(USERS).start()
        cluster = fake.cluster_config()
        fake.stop()

        with self.assertRaises(TimeoutFault):
            cluster_env.wait_for_sandbox(cluster, timeout=0.3, poll_interval=0.05)

class TestSandboxPrerequisites(unittest.TestCase):
    def test_missing_commands_are_listed(self) -> None:
        with tempfile.TemporaryDirectory() as empty_dir:
            missing = cluster_env.missing_sandbox_prerequisites(empty_dir)

        self.assertEqual(["docker", "docker-compose"], missing)

    def test_missing_commands_stop_the_sandbox_start(self) -> None:
        with tempfile.TemporaryDirectory() as empty_dir:
            with self.assertRaises(cluster_env.DockerError) as context:
                cluster_env.ensure_sandbox_prerequisites(daemon_timeout=1, poll_interval=0.1, search_path=empty_dir)

        self.assertIsInstance(context.exception, ConfigurationFault)
        self.assertEqual(["docker", "docker-compose"], context.exception.missing)
        self.assertTrue("docker-compose" in context.exception.message)

#!/usr/bin/env python3

"""
This script is the entry point to running the integration scenarios against a CDAP cluster.
It can bring up a dockerised CDAP sandbox first, runs the selected scenarios and writes a
junit style report. For more information, run the script with the "--help" switch.
"""

import argparse
import io
import logging
import os
import re
import sys
import time
import traceback

from pathlib import Path
from typing import Any, Iterable, List, Optional

import unittest

import cluster_env
import output

from cdap_testing import categories
from cdap_testing.config import CONFIG_ENV_VARIABLE, load_config
from cdap_testing.faults import TimeoutFault
from cdap_testing.report import ReportRecord, Result

SCENARIO_DIR = Path(__file__).expanduser().resolve().parent / "test" / "integration"
SCENARIO_PATTERN = "scenario_*.py"

SUITES = {
    "all": [],
    "cm": categories.CM_SUITE_EXCLUDED,
}

def iterate_tests(test_suite_or_case: Iterable[Any]) -> Iterable[Any]:
    """
    Iterate through all of the test cases in 'test_suite_or_case'.

    Copied from https://stackoverflow.com/questions/15487587/python-unittest-get-testcase-ids-from-nested-testsuite.

    """
    try:
        suite = iter(test_suite_or_case)
    except TypeError:
        yield test_suite_or_case
    else:
        for test in suite:
            for subtest in iterate_tests(test):
                yield subtest

def any_regex_matches(string: str, regexes: List[str]) -> bool:
    """
    Checks whether any of the provided regexes matches the given string.

    Args:
        string: The string that will be checked agains the regexes.
        regexes: A list of regular expressions.

    Returns:
        True if any of `regexes` matches `string`; false otherwise.

    """

    return any(map(lambda regex: re.fullmatch(regex, string), regexes))

def filter_tests(tests: Iterable[Any],
                 filter_test_regexes: Optional[List[str]],
                 excluded_categories: List[str]) -> List[Any]:
    """
    Filters the provided tests by the given regular expressions and categories. If `filter_test_regexes`
    is not None, only keeps the tests whose ids match any of the given regular expressions. Tests tagged
    with any of `excluded_categories` are dropped.

    Args:
        tests: An iterable of tests.
        filter_test_regexes: An optional list of regular expressions.
        excluded_categories: The categories of tests that should not be run.

    Returns:
        The list of tests filtered as described above.

    """

    kept = filter(lambda test: not categories.is_excluded(test, excluded_categories), tests)

    if filter_test_regexes is not None:
        regexes: List[str] = filter_test_regexes
        kept = filter(lambda test: any_regex_matches(test.id(), regexes), kept)

    return list(kept)

def _format_exception(err: Any) -> str:
    err_stream = io.StringIO()
    traceback.print_exception(*err, file=err_stream)
    return err_stream.getvalue()

class RecordingTestResult(unittest.TextTestResult):
    """
    A test result that additionally keeps a `ReportRecord` for every scenario.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.records: List[ReportRecord] = []
        self._start_time = 0.0

    def startTest(self, test: unittest.TestCase) -> None:
        self._start_time = time.monotonic()
        super().startTest(test)

    def _record(self, test: unittest.TestCase, result: Result, stderr: Optional[str] = None) -> None:
        classname = "{}.{}".format(type(test).__module__, type(test).__name__)
        name = getattr(test, "_testMethodName", test.id())
        self.records.append(ReportRecord(name, result, classname, None, stderr,
                                         time.monotonic() - self._start_time))

    def addSuccess(self, test: unittest.TestCase) -> None:
        super().addSuccess(test)
        self._record(test, Result.SUCCEEDED)

    def addFailure(self, test: unittest.TestCase, err: Any) -> None:
        super().addFailure(test, err)
        self._record(test, Result.FAILED, _format_exception(err))

    def addError(self, test: unittest.TestCase, err: Any) -> None:
        super().addError(test, err)
        result = Result.TIMED_OUT if isinstance(err[1], TimeoutFault) else Result.ERROR
        self._record(test, result, _format_exception(err))

    def addSkip(self, test: unittest.TestCase, reason: str) -> None:
        super().addSkip(test, reason)
        self._record(test, Result.SKIPPED, reason)

def run_scenarios(tests: List[Any]) -> RecordingTestResult:
    """
    Runs the given scenarios.

    Args:
        tests: The test cases to run.

    Returns:
        The result of the run, including a `ReportRecord` for every scenario.

    """

    suite = unittest.TestSuite(tests)
    runner = unittest.TextTestRunner(verbosity=2, resultclass=RecordingTestResult)
    result = runner.run(suite)
    assert isinstance(result, RecordingTestResult)
    return result

def write_report(suite_name: str, records: List[ReportRecord], report_dir: Path, log_dir: Optional[Path]) -> Path:
    report_dir.mkdir(parents=True, exist_ok=True)
    xml_report = output.generate_report(suite_name, records, log_dir)
    xml_report_file = report_dir / "report.xml"
    xml_report.write(str(xml_report_file))

    logging.info("Wrote the report to %s.", xml_report_file)
    return xml_report_file

def get_argument_parser() -> argparse.ArgumentParser:
    """
    Builds and returns an argument parser for the script entry point.

    Returns:
        An argument parser for the script entry point.

    """

    parser = argparse.ArgumentParser(description="Run the CDAP integration scenarios.\n" +
                                     "If a docker-compose directory is given, a CDAP sandbox is started " +
                                     "from it before and stopped after the scenarios.")
    parser.add_argument("config", help="The YAML file describing the cluster and the users.")
    parser.add_argument("-d", "--docker-compose-dir",
                        help="The docker-compose directory of the CDAP sandbox to start.")
    parser.add_argument("-t", "--tests", nargs="*", help="Only run tests that match any the provided regexes.")
    parser.add_argument("-s", "--suite", choices=sorted(SUITES), default="all",
                        help="The suite to run; suites leave out scenarios the cluster cannot run.")
    parser.add_argument("-x", "--exclude-category", nargs="*", default=[],
                        help="Additional categories of scenarios not to run.")
    parser.add_argument("-r", "--report-dir", default="testing/reports", help="The directory of the report.")
    parser.add_argument("-l", "--logfile", default="integration_tests.log", help="The logfile.")

    return parser

def main() -> None:
    """
    The entry point of the script.
    """

    args = get_argument_parser().parse_args()

    logging_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    logging.basicConfig(format=logging_format,
                        level=logging.INFO,
                        filename=args.logfile)

    report_dir = Path(args.report_dir)
    compose_dir = Path(args.docker_compose_dir) if args.docker_compose_dir is not None else None
    log_dir: Optional[Path] = None
    all_ok = False

    try:
        config = load_config(Path(args.config))
        # The scenarios read the configuration through the environment.
        os.environ[CONFIG_ENV_VARIABLE] = str(Path(args.config).expanduser().resolve())

        if compose_dir is not None:
            cluster_env.ensure_sandbox_prerequisites()
            cluster_env.docker_compose_up(compose_dir)
            cluster_env.wait_for_sandbox(config.cluster)

        discovered = unittest.TestLoader().discover(str(SCENARIO_DIR), pattern=SCENARIO_PATTERN,
                                                    top_level_dir=str(SCENARIO_DIR))
        excluded = SUITES[args.suite] + args.exclude_category
        tests = filter_tests(iterate_tests(discovered), args.tests, excluded)
        logging.info("Running %s scenario(s) of suite %s.", len(tests), args.suite)

        result = run_scenarios(tests)
        all_ok = result.wasSuccessful()

        if compose_dir is not None:
            log_dir = report_dir / "sandbox-logs"
            cluster_env.copy_cdap_logs(cluster_env.get_cdap_sandbox().name, log_dir)

        write_report(args.suite, result.records, report_dir, log_dir)

    # We catch all exceptions to be able to log them.
    except Exception: # pylint: disable=broad-except
        err_stream = io.StringIO()
        traceback.print_exc(file=err_stream)
        logging.error(err_stream.getvalue())
        sys.exit(2)
    finally:
        if compose_dir is not None:
            cluster_env.docker_compose_down(compose_dir)

    if not all_ok:
        sys.exit(1)

if __name__ == "__main__":
    main()

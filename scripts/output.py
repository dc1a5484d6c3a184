#!/usr/bin/env python3

"""
This module provides functionality for generating junit style reports from the scenario results.
"""

import io

from pathlib import Path
from typing import Dict, List, Optional

import xml.etree.ElementTree as ET

# pylint: disable=useless-import-alias

import cdap_testing.report as report

# pylint: enable=useless-import-alias

def get_sandbox_logs(log_dir: Optional[Path], max_chars: int = 20000) -> Dict[str, str]:
    """
    Returns the tails of the log files copied from the CDAP sandbox. The returned object is a dict,
    where the keys are the names of the log files and the values are their last `max_chars` characters.

    Args:
        log_dir: The directory on the local file system where the sandbox logs are located.
        max_chars: The maximal number of characters kept from the end of each log file.

    Returns:
        A dictionary with the results. For details, see above.

    """

    if log_dir is None:
        return {}

    resolved = log_dir.expanduser().resolve()
    if not resolved.exists():
        return {}

    res: Dict[str, str] = {}
    log_files = filter(lambda path: path.is_file() and path.suffix == ".log", sorted(resolved.iterdir()))
    for log_file in log_files:
        text: str

        with log_file.open(errors="replace") as log:
            text = log.read()

        res[log_file.name] = text[-max_chars:]

    return res

def printable_sandbox_logs(log_dir: Optional[Path]) -> str:
    """
    Returns the aggregated tails of the sandbox log files, each preceded by a header with the file name.

    Args:
        log_dir: The directory on the local file system where the sandbox logs are located.

    Returns:
        The aggregated logs.

    """

    logs = io.StringIO()

    for (name, text) in get_sandbox_logs(log_dir).items():
        header = "{asterisks}\n**{name}**\n{asterisks}\n\n".format(asterisks="*" * (len(name) + 4), name=name)
        logs.write(header + text + "\n\n")

    return logs.getvalue()

def generate_report(suite_name: str,
                    report_records: List[report.ReportRecord],
                    log_dir: Optional[Path]) -> ET.ElementTree:
    """
    Generates a junit style xml from the scenario results. The sandbox logs are attached
    to the scenarios that did not succeed.

    Args:
        suite_name: The name of the test suite.
        report_records: A list of `ReportRecord` objects describing the results of the scenarios.
        log_dir: The directory on the local file system where the sandbox logs are located.

    Returns:
        An `ElementTree` object representing the xml document.

    """

    failures = [record for record in report_records
                if record.result in (report.Result.FAILED, report.Result.TIMED_OUT)]
    errors = [record for record in report_records if record.result == report.Result.ERROR]
    skipped = [record for record in report_records if record.result == report.Result.SKIPPED]

    testsuite = ET.Element("testsuite", attrib={"name" : suite_name,
                                                "tests" : str(len(report_records)),
                                                "failures" : str(len(failures)),
                                                "errors" : str(len(errors)),
                                                "skipped" : str(len(skipped))})

    sandbox_logs: Optional[str] = None

    for record in report_records:
        testcase = ET.Element("testcase", attrib={"classname" : record.classname,
                                                  "name" : record.name,
                                                  "time" : "{:.3f}".format(record.duration)})
        result = record.result
        if result == report.Result.SKIPPED:
            ET.SubElement(testcase, "skipped")
        elif result == report.Result.TIMED_OUT:
            ET.SubElement(testcase, "failure", attrib={"type" : "timeout"})
        elif result == report.Result.FAILED:
            ET.SubElement(testcase, "failure", attrib={"type" : "failed"})
        elif result == report.Result.ERROR:
            ET.SubElement(testcase, "error", attrib={"type" : "error"})
        else:
            assert result == report.Result.SUCCEEDED

        stdout_element = ET.SubElement(testcase, "system-out")
        stdout_element.text = record.stdout if record.stdout is not None else ""

        stderr_element = ET.SubElement(testcase, "system-err")
        stderr_text = record.stderr if record.stderr is not None else ""
        if result not in (report.Result.SUCCEEDED, report.Result.SKIPPED):
            if sandbox_logs is None:
                sandbox_logs = printable_sandbox_logs(log_dir)
            stderr_text += "\n\nSandbox logs:\n\n" + sandbox_logs
        stderr_element.text = stderr_text

        testsuite.append(testcase)

    return ET.ElementTree(testsuite)

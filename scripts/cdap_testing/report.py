#!/usr/bin/env python3

"""
This module provides a class to store the results of and additional information about a scenario that was run.
"""

from enum import Enum, auto, unique
from typing import Optional

@unique
class Result(Enum):
    """
    An enum to store scenario results.
    """

    SUCCEEDED = auto()
    SKIPPED = auto()
    TIMED_OUT = auto()
    FAILED = auto()
    ERROR = auto()

class ReportRecord:
    """
    A class that stores the result of and additional information about a scenario that was run.
    """

    def __init__(self,
                 name: str,
                 result: Result,
                 classname: str,
                 stdout: Optional[str] = None,
                 stderr: Optional[str] = None,
                 duration: float = 0.0) -> None:
        """
        Creates `ReportRecord` object.

        Args:
            name: The name of the scenario.
            result: The result of the scenario.
            classname: The name of the test case class the scenario belongs to.
            stdout: Optionally, the output of the scenario.
            stderr: Optionally, the traceback of the failure or error.
            duration: The running time of the scenario, in seconds.

        """

        self.name = name
        self.result = result
        self.classname = classname
        self.stdout = stdout
        self.stderr = stderr
        self.duration = duration

#!/usr/bin/env python3

"""
This module provides categories to tag the scenarios with the cluster features they need,
so that suites for clusters lacking a feature can leave them out.
"""

from typing import Any, Callable, Iterable, Set

REQUIRES_SPARK = "RequiresSpark"
REQUIRES_SPARK2 = "RequiresSpark2"
REQUIRES_IMPERSONATION = "RequiresImpersonation"

_ATTRIBUTE = "_cdap_categories"

def requires(*categories: str) -> Callable[[Any], Any]:
    """
    A decorator that tags a test method or test case class with categories.
    """

    def _decorate(target: Any) -> Any:
        existing: Set[str] = set(getattr(target, _ATTRIBUTE, set()))
        setattr(target, _ATTRIBUTE, existing | set(categories))
        return target

    return _decorate

def categories_of(test: Any) -> Set[str]:
    """
    Returns the categories of a `unittest.TestCase` instance, including those of its class.
    """

    method = getattr(test, getattr(test, "_testMethodName", ""), None)
    return set(getattr(type(test), _ATTRIBUTE, set())) | set(getattr(method, _ATTRIBUTE, set()))

def is_excluded(test: Any, excluded_categories: Iterable[str]) -> bool:
    return bool(categories_of(test) & set(excluded_categories))

# The suite for clusters managed by Cloudera Manager, which do not provide Spark 2.
CM_SUITE_EXCLUDED = [REQUIRES_SPARK2]

"""
Pytest configuration file for the sequence engine tests.

This file ensures that the parent directory is in the Python path
so that test files can import sequencer, utils, and models modules.
"""

import sys
from pathlib import Path

# Add the parent directory to the Python path
parent_dir = Path(__file__).parent.parent
if str(parent_dir) not in sys.path:
    sys.path.insert(0, str(parent_dir))

import pytest

from utils import clear_performance_metrics


class CountingVisitor:
    """Visitor that records calls and returns a fixed answer"""
    def __init__(self, answer=False):
        self.answer = answer
        self.calls = []

    def __call__(self, *args):
        self.calls.append(args[0] if len(args) == 1 else args)
        return self.answer


@pytest.fixture
def stop_visitor():
    return CountingVisitor(answer=False)


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with an empty performance registry"""
    clear_performance_metrics()
    yield
    clear_performance_metrics()

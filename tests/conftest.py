"""
Shared pytest fixtures for resource-networks tests.
"""

import logging
from pathlib import Path

import pytest

from resourcenetworks.topology import AdjacencyTopology


@pytest.fixture(scope="session")
def test_output_root() -> Path:
    """
    Returns the root test_output directory. Created once per test session.
    Files here persist after tests complete for easy access.
    """
    output_dir = Path(__file__).parent.parent / "test_output"
    output_dir.mkdir(exist_ok=True)
    return output_dir


@pytest.fixture
def test_output_dir(request, test_output_root) -> Path:
    """
    Returns a directory for the current test to write output files.
    Directory structure: test_output/<module_name>/<test_name>/
    """
    module_name = request.module.__name__.split(".")[-1]
    test_dir = test_output_root / module_name / request.node.name
    test_dir.mkdir(parents=True, exist_ok=True)
    return test_dir


@pytest.fixture
def path5() -> AdjacencyTopology:
    """Path graph 0-1-2-3-4."""
    return AdjacencyTopology.from_edges(5, [(0, 1), (1, 2), (2, 3), (3, 4)])


@pytest.fixture
def cycle6() -> AdjacencyTopology:
    """Cycle graph on 6 nodes."""
    return AdjacencyTopology.from_edges(6, [(i, (i + 1) % 6) for i in range(6)])


@pytest.fixture(autouse=True)
def reset_resourcenetworks_logging():
    """Reset the package logger before and after each test.

    Removes every handler except a NullHandler and resets the level to
    NOTSET, so one test's logging setup does not leak into another.
    """
    logger = logging.getLogger("resourcenetworks")

    def reset():
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)
            if not isinstance(handler, logging.NullHandler):
                handler.close()
        logger.addHandler(logging.NullHandler())
        logger.setLevel(logging.NOTSET)

    reset()
    yield
    reset()

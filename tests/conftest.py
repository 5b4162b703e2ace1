import os
import sys

import pytest
from prometheus_client import CollectorRegistry

# Ensure project root is importable (so `import dpx` works without installing)
_project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from dpx.handles import HandleRegistry  # noqa: E402
from tests.fakes import FakeDockerSource  # noqa: E402


@pytest.fixture
def registry():
    """A private prometheus registry so tests never share series."""
    return CollectorRegistry()


@pytest.fixture
def handles(registry):
    return HandleRegistry(registry)


@pytest.fixture
def source():
    return FakeDockerSource()

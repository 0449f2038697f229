import pytest

from service.workflow.nodes.base import get_node_registry
from tests.fakes import FakeGateway


@pytest.fixture
def registry():
    return get_node_registry()


@pytest.fixture
def fake_gateway():
    return FakeGateway()

import pytest

from weave import Graph


@pytest.fixture
def graph():
    return Graph()

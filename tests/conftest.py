import pytest

from tcalc import Calculator


@pytest.fixture
def calc():
    return Calculator()


@pytest.fixture
def b(calc):
    """Expression builder bound to the `calc` fixture's domain and operators."""
    return calc.builder

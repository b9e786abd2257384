import pytest

from helpers import FakeClock, make_settings


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return make_settings()

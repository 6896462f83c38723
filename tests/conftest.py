import pytest

from backend import PresenceRegistry
from broadcaster import Broadcaster
from hub import ChatHub


FIXED_TIME_MS = 1_700_000_000_000


@pytest.fixture
def registry():
    return PresenceRegistry()


@pytest.fixture
def broadcaster():
    return Broadcaster()


@pytest.fixture
def hub(registry, broadcaster):
    """Hub without the initial snapshot push and with a fixed clock."""
    return ChatHub(registry, broadcaster, push_initial_users=False, clock=lambda: FIXED_TIME_MS)

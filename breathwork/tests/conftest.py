"""pytest configuration file."""

import pytest, os, logging

from ..session import ManualClock, ManualScheduler


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (may take several seconds)"
    )
    config.addinivalue_line(
        "markers", "qt: marks tests that spin a Qt event loop"
    )


@pytest.fixture(autouse=True, scope="session")
def _isolate_user_dir_and_logs(tmp_path_factory):
    home = tmp_path_factory.mktemp("breathwork_home")
    previous = os.environ.get("BREATHWORK_HOME")
    os.environ["BREATHWORK_HOME"] = str(home)
    for name in ("BREATHWORK_API_URL", "BREATHWORK_SESSION_COOKIE", "BREATHWORK_SOUND", "BREATHWORK_OFFLINE"):
        os.environ.pop(name, None)
    logging.getLogger("breathwork.session.events").setLevel(logging.WARNING)
    yield
    if previous is None:
        os.environ.pop("BREATHWORK_HOME", None)
    else:
        os.environ["BREATHWORK_HOME"] = previous


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)

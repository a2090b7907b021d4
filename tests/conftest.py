import asyncio
import inspect
import os
import sys
from pathlib import Path

# Settings are read at import time; pin the environment before importing the app
os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault("APP_MODE", "production")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-testing-only-do-not-use-in-production")
os.environ.pop("REDIS_URL", None)

import httpx  # noqa: E402
import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from sitegate.client.api import ApiClient  # noqa: E402
from sitegate.client.navigator import Navigator  # noqa: E402
from sitegate.client.notifier import RecordingNotifier  # noqa: E402
from sitegate.client.session_store import SessionStore  # noqa: E402
from sitegate.config import ClientSettings  # noqa: E402
from sitegate.service.runtime import reset_runtime_for_tests  # noqa: E402

BASE_URL = "http://testserver/api"


@pytest.fixture(autouse=True)
def reset_runtime_state():
    reset_runtime_for_tests()
    yield
    reset_runtime_for_tests()


@pytest.fixture
def make_api_client():
    """Build an ApiClient whose HTTP traffic goes to ``handler``."""

    def _make(handler, *, navigator=None, store=None, online=True, **settings_overrides):
        settings = ClientSettings(base_url=BASE_URL, **settings_overrides)
        return ApiClient(
            settings,
            store=store or SessionStore(),
            navigator=navigator or Navigator("/dashboard"),
            notifier=RecordingNotifier(),
            transport=httpx.MockTransport(handler),
            online_probe=lambda: online,
        )

    return _make


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")

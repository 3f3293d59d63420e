"""
Pytest configuration and shared fixtures for testing.
Provides settings, stores, a scripted assistant backend, a recording
surface and a ready-to-use console.
"""
import os
import threading
from typing import Any, Dict, List, Optional, Sequence

import pytest

# Set testing environment before importing the package
os.environ["ENVIRONMENT"] = "testing"
os.environ.pop("OPENAI_API_KEY", None)

from support_console.assistant.base import AssistantBackend, AssistantBackendError
from support_console.assistant.product_context import StaticProductCatalog
from support_console.config import Settings
from support_console.database import Database
from support_console.orchestrator import FixedHandlerSelector, SupportConsole, SurfaceState
from support_console.schemas.domain import Message, Product
from support_console.store import InMemoryConversationStore, SQLConversationStore
from support_console.utils.workers import WorkerPool


# ===========================
# Assistant Backend Double
# ===========================

class ScriptedBackend(AssistantBackend):
    """
    Assistant backend that answers from a script.

    - ``replies``: texts returned in order (then ``default_reply``)
    - ``fail_with``: exception raised by every call while set
    - ``hold``: while set, calls block until ``release()`` is called
    """

    def __init__(self, replies: Optional[Sequence[str]] = None, default_reply: str = "How can I help?"):
        self.replies: List[str] = list(replies or [])
        self.default_reply = default_reply
        self.fail_with: Optional[Exception] = None
        self.calls: List[Dict[str, Any]] = []
        self.started = threading.Event()
        self._gate = threading.Event()
        self._gate.set()
        self._lock = threading.Lock()

    def hold(self) -> None:
        self._gate.clear()

    def release(self) -> None:
        self._gate.set()

    def _answer(self, mode: str, prompt: str, history: Sequence[Message], **extra) -> str:
        with self._lock:
            self.calls.append({"mode": mode, "prompt": prompt, "history": list(history), **extra})
        self.started.set()
        self._gate.wait(timeout=10)

        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            return self.replies.pop(0) if self.replies else self.default_reply

    def complete(self, prompt, history, product_context, timeout):
        return self._answer("text", prompt, history, product_context=product_context, timeout=timeout)

    def complete_with_image(self, prompt, image_bytes, history, product_context, timeout, mime_type="image/png"):
        return self._answer(
            "vision",
            prompt,
            history,
            product_context=product_context,
            timeout=timeout,
            image_bytes=image_bytes,
            mime_type=mime_type,
        )


# ===========================
# Settings Fixtures
# ===========================

@pytest.fixture
def test_settings() -> Settings:
    """Settings for tests: in-memory database, short timeouts, no retry waits."""
    return Settings(
        _env_file=None,
        environment="testing",
        debug=True,
        database_url="sqlite:///:memory:",
        assistant_timeout_seconds=2.0,
        session_lock_timeout_seconds=5.0,
        worker_pool_size=8,
        ticket_create_max_attempts=3,
        ticket_create_retry_wait_seconds=0.0,
        handler_pool=["2"],
    )


# ===========================
# Store Fixtures
# ===========================

@pytest.fixture
def memory_store() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest.fixture
def database():
    """In-memory SQLite database with the schema created."""
    db = Database("sqlite:///:memory:")
    db.init_schema()
    yield db
    db.dispose()


@pytest.fixture
def sql_store(database) -> SQLConversationStore:
    return SQLConversationStore(database)


@pytest.fixture(params=["in_memory", "sql"])
def store(request, memory_store, sql_store):
    """Parametrized fixture to run a test against both store implementations."""
    if request.param == "in_memory":
        return memory_store
    return sql_store


# ===========================
# Orchestrator Fixtures
# ===========================

@pytest.fixture
def backend():
    backend = ScriptedBackend()
    yield backend
    # Never leave a worker blocked
    backend.release()


@pytest.fixture
def surface() -> SurfaceState:
    return SurfaceState()


@pytest.fixture
def router_product() -> Product:
    return Product(
        product_id="router-x1",
        name="Router X1",
        model_version="v2.1",
        category="Networking",
        manual="Hold the reset button for 10 seconds to restore factory settings.",
    )


@pytest.fixture
def catalog(router_product) -> StaticProductCatalog:
    return StaticProductCatalog(router_product)


@pytest.fixture
async def console(memory_store, backend, surface, catalog, test_settings):
    """Console over the in-memory store with the scripted backend."""
    pool = WorkerPool(test_settings.worker_pool_size)
    support_console = SupportConsole(
        memory_store,
        backend,
        settings=test_settings,
        handler_selector=FixedHandlerSelector("2"),
        surface=surface,
        product_catalog=catalog,
        pool=pool,
    )
    yield support_console
    backend.release()
    await support_console.close()
    pool.shutdown(wait=True)


@pytest.fixture
async def session_id(console) -> str:
    """An ACTIVE session for user-1 about the router."""
    result = await console.start_session("user-1", "router-x1")
    assert result.success
    return result.data["session"].session_id


@pytest.fixture
def failing_backend(backend) -> ScriptedBackend:
    backend.fail_with = AssistantBackendError("upstream returned 500")
    return backend


# ===========================
# Pytest Configuration
# ===========================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )

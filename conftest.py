import pytest

from lending_library.categories import BookBuilder
from lending_library.database import SQLiteCatalogStore
from lending_library.lending import LendingEngine
from lending_library.memory_store import InMemoryCatalogStore
from lending_library.service import LendingService
from lending_library.ui_helpers import OUTPUT_MODE_ENV


class RecordingNotifier:
    """Keeps every notification so tests can assert on them."""

    def __init__(self):
        self.messages = []

    def notify(self, message):
        self.messages.append(message)


@pytest.fixture(autouse=True)
def plain_output(monkeypatch):
    # CLI output mode is kept in the environment; reset it for every test
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")


@pytest.fixture
def db_file(tmp_path):
    return str(tmp_path / "catalog.db")


@pytest.fixture
def sqlite_store(db_file):
    return SQLiteCatalogStore(db_file=db_file, timeout=5, unique_titles=False)


@pytest.fixture(params=["sqlite", "memory"])
def store(request, tmp_path):
    # Each lending test runs against both store adapters
    if request.param == "sqlite":
        return SQLiteCatalogStore(db_file=str(tmp_path / "lending.db"), timeout=5, unique_titles=False)
    return InMemoryCatalogStore()


@pytest.fixture
def engine(store):
    return LendingEngine(store)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(sqlite_store, notifier):
    return LendingService(LendingEngine(sqlite_store), notifier)


@pytest.fixture
def clean_code():
    return BookBuilder("Software Engineering").set_title("Clean Code").set_author("A").build()

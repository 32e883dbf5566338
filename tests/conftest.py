import pytest

from knotboard.database import Database
from knotboard.events import MessageBus
from knotboard.scene import SceneModel
from knotboard.scheduler import ManualTimer
from knotboard.workspace import Workspace


@pytest.fixture
def bus():
    return MessageBus()


@pytest.fixture
def scene(bus):
    return SceneModel(bus)


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "knotboard.db")
    yield database
    database.close()


@pytest.fixture
def timer():
    return ManualTimer()


@pytest.fixture
def workspace(db, timer):
    ws = Workspace(db, timer=timer)
    ws.new_canvas("Test Canvas")
    yield ws
    ws.close()


@pytest.fixture(autouse=True)
def data_dir(tmp_path, monkeypatch):
    """Keep export and data directories inside the test's temp dir."""
    path = tmp_path / "data"
    monkeypatch.setenv("KNOTBOARD_DATA_DIR", str(path))
    return path

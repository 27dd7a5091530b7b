import sys
import pytest
from pathlib import Path

# Ensure project root on sys.path
_THIS_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = _THIS_DIR.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from todo_backend.config import AppConfig
from todo_backend.repository import TodoRepository


@pytest.fixture()
def db_path(tmp_path):
    return str(tmp_path / "db" / "todos_test.db")


@pytest.fixture()
def repo(db_path):
    r = TodoRepository.open(db_path)
    yield r
    r.close()


@pytest.fixture()
def app_config(tmp_path, db_path):
    return AppConfig(db_path=db_path, log_dir=str(tmp_path / "logs"))


@pytest.fixture()
def client(app_config):
    # startup 钩子只在 with TestClient(...) 中触发
    from fastapi.testclient import TestClient
    from todo_backend.api import create_app
    with TestClient(create_app(app_config)) as c:
        yield c

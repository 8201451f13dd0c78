from pathlib import Path

import pytest

from vhost_merge import db


@pytest.fixture
def db_path(tmp_path: Path):
    path = tmp_path / "sites.db"
    db.reset_engine()
    db.init_db(path)
    yield path
    db.reset_engine()

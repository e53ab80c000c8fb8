import logging
from pathlib import Path

import pytest

from tmgr.db import Store


@pytest.fixture
def store(tmp_path: Path):
    with Store(tmp_path / "t.db") as s:
        yield s


@pytest.fixture(autouse=True)
def _drop_cli_log_handlers():
    # main() binds a stderr handler to whatever capsys installed for that test.
    yield
    root = logging.getLogger()
    for h in list(root.handlers):
        if getattr(h, "_tmgr_handler", False):
            root.removeHandler(h)
            h.close()

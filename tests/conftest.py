import os
import sys
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest


def pytest_configure():
    # Ensure `src/` is importable as top-level for `common.*` / `state.*` imports
    root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    src_path = os.path.join(root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


@pytest.fixture
def florida() -> ZoneInfo:
    return ZoneInfo("America/New_York")


@pytest.fixture
def local_ts(florida):
    """Epoch seconds for a wall-clock time in Florida."""

    def _ts(*args: int) -> int:
        return int(datetime(*args, tzinfo=florida).timestamp())

    return _ts

from dataclasses import replace
from pathlib import Path

import pytest

from config import Config


@pytest.fixture
def make_config(tmp_path: Path):
    def _make(**overrides) -> Config:
        base = Config(data_dir=tmp_path / "data", ui_dist_dir=tmp_path / "ui")
        return replace(base, **overrides)

    return _make

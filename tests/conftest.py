"""
Pytest configuration and fixtures for Herald tests.
"""

import sys
from pathlib import Path

import pytest
from PIL import Image

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))


@pytest.fixture
def make_background(tmp_path: Path):
    """Write a solid-colour PNG into tmp_path and return its path."""

    def _make(name: str = "bg.png", color=(10, 120, 200), size=(400, 150)) -> Path:
        path = tmp_path / name
        Image.new("RGB", size, color).save(path, format="PNG")
        return path

    return _make

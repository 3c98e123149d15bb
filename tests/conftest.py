import os
import sys
from pathlib import Path

import pytest

TESTS_ROOT = Path(__file__).resolve().parent
REPO_ROOT = TESTS_ROOT.parent
SRC_ROOT = REPO_ROOT / "src"

# Make src/ importable as 'instrux', and tests/ for the shared helpers
for p in (SRC_ROOT, TESTS_ROOT):
    if str(p) not in sys.path:
        sys.path.insert(0, str(p))

from helpers import ProjectBuilder  # noqa: E402


@pytest.fixture
def project(tmp_path: Path) -> ProjectBuilder:
    """Empty project root with helpers for writing sources and configs."""
    return ProjectBuilder(tmp_path)


@pytest.fixture(autouse=True)
def _isolate_instrux_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """INSTRUX_* variables from the developer's shell must not leak into config loading."""
    for key in list(os.environ):
        if key.startswith("INSTRUX_"):
            monkeypatch.delenv(key, raising=False)

import sys
from pathlib import Path

import pytest

# Ensure repository root is on sys.path so the in-tree package imports cleanly.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pipedeck.domain import Repository  # noqa: E402


@pytest.fixture
def repo() -> Repository:
    return Repository(owner="acme", name="api", remote_url="git@github.com:acme/api.git")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ("GITHUB_TOKEN", "GITLAB_TOKEN", "GITLAB_URL", "PIPEDECK_LOG_LEVEL", "PIPEDECK_CONFIG"):
        monkeypatch.delenv(key, raising=False)

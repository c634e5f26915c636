import pytest

from pixel_pal.config import settings


@pytest.fixture(autouse=True)
def isolated_project_root(tmp_path, monkeypatch):
    # Keep logs and state files out of the working tree
    monkeypatch.setattr(settings, "PROJECT_ROOT", tmp_path)
    monkeypatch.setattr(settings, "ENVIRONMENT", "test")
    return tmp_path

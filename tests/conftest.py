import os

import pytest

import hierdoc.config


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep the user's config file and HIERDOC_* variables out of every test."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for key in list(os.environ):
        if key.startswith("HIERDOC_"):
            monkeypatch.delenv(key)
    monkeypatch.setattr(hierdoc.config, "_config", None)

"""Shared fixtures for fifoshell tests."""

from __future__ import annotations

import os
import shutil

import pytest


@pytest.fixture
def bash() -> str:
    path = shutil.which("bash") or "/bin/bash"
    if not os.path.exists(path):
        pytest.skip("bash is not installed")
    return path

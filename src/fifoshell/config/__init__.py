"""Configuration: Pydantic model for shell session settings."""

from __future__ import annotations

import json
import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator


def parse_env(entries: list[str] | tuple[str, ...]) -> dict[str, str]:
    """Turn ``KEY=VALUE`` entries into a dict. Later keys win."""
    env: dict[str, str] = {}
    for entry in entries:
        key, sep, value = entry.partition("=")
        if not sep or not key:
            raise ValueError(f"environment entry must be KEY=VALUE: {entry!r}")
        env[key] = value
    return env


class ShellConfig(BaseModel):
    """Settings for one shell session.

    ``env`` of None means the shell inherits the caller's environment;
    otherwise the shell gets exactly that environment.  ``timeout`` of None
    means commands block until they finish.
    """

    shell: str = Field(default="/bin/bash", description="Shell executable")
    env: dict[str, str] | None = Field(default=None)
    cwd: str | None = Field(default=None, description="Initial working directory")
    capture_stdout: bool = Field(default=True)
    capture_stderr: bool = Field(default=True)
    timeout: float | None = Field(
        default=None, gt=0, description="Per-command timeout in seconds"
    )

    @field_validator("env", mode="before")
    @classmethod
    def _env_entries(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return parse_env(value)
        return value

    @classmethod
    def load(cls, config_path: str | None = None) -> ShellConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            FIFOSHELL_SHELL    - Shell executable
            FIFOSHELL_CWD      - Initial working directory
            FIFOSHELL_TIMEOUT  - Per-command timeout in seconds
        """
        load_dotenv()

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        env_shell = os.environ.get("FIFOSHELL_SHELL")
        if env_shell:
            config_data["shell"] = env_shell

        env_cwd = os.environ.get("FIFOSHELL_CWD")
        if env_cwd:
            config_data["cwd"] = env_cwd

        env_timeout = os.environ.get("FIFOSHELL_TIMEOUT")
        if env_timeout:
            config_data["timeout"] = float(env_timeout)

        return cls.model_validate(config_data)

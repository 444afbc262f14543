"""Build metadata reported by the relay's HTTP surface.

CI images set APP_VERSION and GIT_COMMIT; a local checkout falls back to
asking git for the short commit hash.
"""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass


def _git_short_sha() -> str:
    try:
        return subprocess.check_output(
            ["git", "rev-parse", "--short", "HEAD"],  # noqa: S607
            text=True,
            stderr=subprocess.DEVNULL,
        ).strip()
    except (FileNotFoundError, subprocess.CalledProcessError):
        return "dev"


@dataclass(frozen=True)
class BuildInfo:
    version: str
    commit: str

    @classmethod
    def from_environment(cls) -> BuildInfo:
        return cls(
            version=os.environ.get("APP_VERSION", "dev"),
            commit=os.environ.get("GIT_COMMIT") or _git_short_sha(),
        )


BUILD_INFO = BuildInfo.from_environment()


def build_metadata() -> dict[str, str]:
    return {"version": BUILD_INFO.version, "commit": BUILD_INFO.commit}

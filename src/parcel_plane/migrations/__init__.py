"""SQL migrations applied by the deployment pipeline, in file-name order."""

from __future__ import annotations

from importlib import resources


def list_migrations() -> list[str]:
    return sorted(
        entry.name
        for entry in resources.files(__name__).iterdir()
        if entry.name.endswith(".sql")
    )


def read_migration(name: str) -> str:
    return resources.files(__name__).joinpath(name).read_text(encoding="utf-8")

"""Process-level settings for the ASGI app factory.

Granian imports :func:`metarouter.asgi.create_app_from_env` in each worker,
so the ``serve`` command hands its options over through the environment.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError

from metarouter.errors import ConfigurationError

ENV_ROUTES = "METAROUTER_ROUTES"
ENV_DEBUG = "METAROUTER_DEBUG"


class Settings(BaseModel):
    """Settings for a served route file. Immutable after creation."""

    model_config = ConfigDict(frozen=True)

    routes: Path
    debug: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        environ = os.environ if environ is None else environ
        routes = environ.get(ENV_ROUTES)
        if not routes:
            raise ConfigurationError(f"{ENV_ROUTES} must point to a routes file")
        try:
            return cls(routes=routes, debug=environ.get(ENV_DEBUG) or False)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid metarouter settings: {exc}") from exc

    def to_env(self) -> dict[str, str]:
        return {ENV_ROUTES: str(self.routes), ENV_DEBUG: "1" if self.debug else "0"}

from typing import Annotated, Any, Literal

from pydantic import AnyUrl, BeforeValidator, HttpUrl, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Use top level .env file (one level above ./backend/)
        env_file="../.env",
        env_ignore_empty=True,
        extra="ignore",
    )
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "voiden-scripting"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    SENTRY_DSN: HttpUrl | None = None

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []
    FRONTEND_HOST: str = "http://localhost:5173"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS] + [
            self.FRONTEND_HOST
        ]

    # Script sandbox budgets (milliseconds). Worker and subprocess budgets are
    # kept separate: the subprocess budget absorbs interpreter spin-up.
    SCRIPT_WORKER_TIMEOUT_MS: int = 5_000
    SCRIPT_SUBPROCESS_TIMEOUT_MS: int = 10_000
    SCRIPT_INPROCESS_TIMEOUT_MS: int = 5_000
    # Grace period between terminate() and kill() when tearing down a child
    SCRIPT_KILL_GRACE_MS: int = 1_000

    # Interpreters. Empty SCRIPT_PYTHON_BINARY means the running interpreter.
    SCRIPT_NODE_BINARY: str = "node"
    SCRIPT_PYTHON_BINARY: str = ""

    # Largest single JSON line accepted from a sandbox (bytes)
    SCRIPT_MAX_MESSAGE_BYTES: int = 16 * 1024 * 1024

    # Comma-separated stdlib modules a Python script may import
    SCRIPT_PYTHON_ALLOWED_MODULES: str = (
        "json,re,math,datetime,time,base64,hashlib,random,string"
    )

    # Project directory holding .voiden/.process.env.json (optional)
    SCRIPT_PROJECT_PATH: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def python_allowed_modules(self) -> frozenset[str]:
        raw = (self.SCRIPT_PYTHON_ALLOWED_MODULES or "").strip()
        return frozenset(s.strip() for s in raw.split(",") if s.strip())


settings = Settings()  # type: ignore

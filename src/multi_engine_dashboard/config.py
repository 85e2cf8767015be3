"""Provide global constants and settings for the project."""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from dotenv import dotenv_values

PROJECT_ROOT = Path(__file__).resolve().parents[2]
PACKAGE_ROOT = Path(__file__).resolve().parent

DB_FILE = Path("ai_results.db")

DATA_DIR = Path("data")
DB_DIR = Path("db")
LOGS_DIR = Path("logs")

DATA_PATH = (PROJECT_ROOT / DATA_DIR).resolve()
DB_PATH = (DATA_PATH / DB_DIR).resolve()
LOGS_PATH = (DATA_PATH / LOGS_DIR).resolve()

# SQL migrations ship with the package
MIGRATIONS_PATH = (PACKAGE_ROOT / "db" / "migrations").resolve()

# Ensure folders are created if not existing
DATA_PATH.mkdir(exist_ok=True)
DB_PATH.mkdir(exist_ok=True)
LOGS_PATH.mkdir(exist_ok=True)

DOTENV_FILE = Path(".env")
DOTENV_FILE_PATH = (PROJECT_ROOT / DOTENV_FILE).resolve()


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    """Process environment first, then the project's .env file."""
    value = os.environ.get(key)
    if value:
        return value
    value = dotenv_values(DOTENV_FILE_PATH).get(key)
    return value or default


DB_FILE_PATH = Path(_env("DATABASE_PATH") or (DB_PATH / DB_FILE)).resolve()

LOG_LEVEL = (_env("LOG_LEVEL", "INFO") or "INFO").upper()

LOG_FILE = Path("application.log")
LOG_FILE_PATH = (LOGS_PATH / LOG_FILE).resolve()

# largest value an SQLite INTEGER column can hold
SQLITE_MAX_INT = 2**63 - 1

MAX_OUTPUT_TOKENS = 1000
# seconds, applies to a single provider call
PROVIDER_TIMEOUT = float(_env("PROVIDER_TIMEOUT", "60") or 60)

# Engine display name -> credential variable, default model, route slug.
# Dict order is the fan-out and display order.
ENGINES = {
    "OpenAI": {
        "api_key_env": "OPENAI_API_KEY",
        "model_env": "OPENAI_MODEL",
        "default_model": "gpt-4.1-mini",
        "slug": "openai",
    },
    "Anthropic": {
        "api_key_env": "ANTHROPIC_API_KEY",
        "model_env": "ANTHROPIC_MODEL",
        "default_model": "claude-sonnet-4-5",
        "slug": "anthropic",
    },
    "Google": {
        "api_key_env": "GOOGLE_API_KEY",
        "model_env": "GOOGLE_MODEL",
        "default_model": "gemini-2.5-flash",
        "slug": "google",
    },
}

ENGINE_BY_SLUG = {spec["slug"]: name for name, spec in ENGINES.items()}

# Every new project gets exactly this pipeline (name, order_index).
# Keep in sync with db/migrations/002_steps_pipeline.sql.
DEFAULT_STEPS = [
    ("research", 1),
    ("outline", 2),
    ("draft", 3),
    ("review", 4),
    ("final", 5),
]


@dataclass(frozen=True)
class EngineSettings:
    name: str
    model: str
    api_key: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class ProviderSettings:
    """
    Credentials and models for every engine, resolved once at startup.
    """
    engines: Dict[str, EngineSettings]

    def get(self, name: str) -> EngineSettings:
        return self.engines[name]

    def missing_credentials(self) -> List[str]:
        return [name for name, e in self.engines.items() if not e.configured]


def load_provider_settings(env: Optional[Mapping[str, str]] = None) -> ProviderSettings:
    """
    Build ProviderSettings from `env` if given, else from the process
    environment and the .env file.
    """
    if env is None:
        lookup = _env
    else:
        def lookup(key, default=None):
            return env.get(key) or default

    engines = {}
    for name, spec in ENGINES.items():
        engines[name] = EngineSettings(
            name=name,
            model=lookup(spec["model_env"], spec["default_model"]),
            api_key=lookup(spec["api_key_env"]),
        )
    return ProviderSettings(engines=engines)


def configure_logging():
    root = logging.getLogger()
    if root.handlers:
        return

    from logging.handlers import RotatingFileHandler

    # console/basic config
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    file_handler = RotatingFileHandler(
        LOG_FILE_PATH,
        maxBytes=5 * 1024 * 1024,  # 5 MB per file
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setLevel(LOG_LEVEL)
    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)


def main():
    """Print global constants and credential status."""
    files_and_paths = {"PROJECT_ROOT": PROJECT_ROOT,
                       "DATA_PATH": DATA_PATH,
                       "DB_PATH": DB_PATH,
                       "DB_FILE_PATH": DB_FILE_PATH,
                       "MIGRATIONS_PATH": MIGRATIONS_PATH,
                       "LOGS_PATH": LOGS_PATH,
                       "LOG_FILE_PATH": LOG_FILE_PATH,
                       }

    print("Current file and path resolutions:")
    print("----------------------------------")
    for label, file_path in files_and_paths.items():
        print(f"{label}: {file_path}")

    print("\nEngines:")
    print("--------")
    settings = load_provider_settings()
    for name, engine in settings.engines.items():
        status = "configured" if engine.configured else "MISSING CREDENTIAL"
        print(f"{name}: model={engine.model} ({status})")


if __name__ == "__main__":
    main()

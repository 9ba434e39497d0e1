"""
BookPress — Backend Configuration
Loads .env automatically, then reads all settings from environment variables.
"""

import os
import sys
from dataclasses import dataclass, replace
from pathlib import Path

from dotenv import load_dotenv

from bookpress.utils.logging import logger

_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(_env_path)

DEV_RENDER_SECRET = "dev-render-secret-change-me"


@dataclass(frozen=True)
class RenderConfig:
    """Render view + headless snapshot service settings."""
    base_url: str
    token_secret: str
    token_ttl: int
    snapshot_url: str
    snapshot_token: str
    timeout: float
    concurrency: int
    scale: float


@dataclass(frozen=True)
class StorageConfig:
    """Object storage and document store backend."""
    backend: str
    firebase_credentials: str
    bucket: str
    download_ttl: int
    provider_ttl: int


@dataclass(frozen=True)
class CompileConfig:
    cache_bucket_seconds: int
    seconds_per_page: int
    merge_overhead_seconds: int


@dataclass(frozen=True)
class LuluConfig:
    """Lulu print-on-demand API credentials."""
    base_url: str
    client_id: str
    client_secret: str
    contact_email: str
    production_delay: int


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""
    env: str
    host: str
    port: int
    debug: bool
    render: RenderConfig
    storage: StorageConfig
    compile: CompileConfig
    lulu: LuluConfig


def _load_config() -> AppConfig:
    return AppConfig(
        env=os.getenv("APP_ENV", "development"),
        host=os.getenv("APP_HOST", "0.0.0.0"),
        port=int(os.getenv("APP_PORT", "8000")),
        debug=os.getenv("APP_DEBUG", "false").lower() == "true",
        render=RenderConfig(
            base_url=os.getenv("RENDER_BASE_URL", "http://localhost:8000"),
            token_secret=os.getenv("RENDER_TOKEN_SECRET", ""),
            token_ttl=int(os.getenv("RENDER_TOKEN_TTL", "300")),
            snapshot_url=os.getenv("SNAPSHOT_SERVICE_URL", "http://localhost:3000"),
            snapshot_token=os.getenv("SNAPSHOT_TOKEN", ""),
            timeout=float(os.getenv("RENDER_TIMEOUT", "60.0")),
            concurrency=int(os.getenv("RENDER_CONCURRENCY", "3")),
            scale=float(os.getenv("RENDER_SCALE", str(300 / 72))),
        ),
        storage=StorageConfig(
            backend=os.getenv("STORE_BACKEND", "memory"),
            firebase_credentials=os.getenv("FIREBASE_CREDENTIALS", ""),
            bucket=os.getenv("FIREBASE_STORAGE_BUCKET", ""),
            download_ttl=int(os.getenv("DOWNLOAD_URL_TTL", "3600")),
            provider_ttl=int(os.getenv("PROVIDER_URL_TTL", "86400")),
        ),
        compile=CompileConfig(
            cache_bucket_seconds=int(os.getenv("COMPILE_CACHE_BUCKET", "86400")),
            seconds_per_page=int(os.getenv("SECONDS_PER_PAGE", "5")),
            merge_overhead_seconds=int(os.getenv("MERGE_OVERHEAD_SECONDS", "30")),
        ),
        lulu=LuluConfig(
            base_url=os.getenv("LULU_API_BASE", "https://api.lulu.com"),
            client_id=os.getenv("LULU_CLIENT_ID", ""),
            client_secret=os.getenv("LULU_CLIENT_SECRET", ""),
            contact_email=os.getenv("LULU_CONTACT_EMAIL", "books@example.com"),
            production_delay=int(os.getenv("LULU_PRODUCTION_DELAY", "120")),
        ),
    )


def _validate_config(cfg: AppConfig) -> AppConfig:
    """Fail fast in production if secrets are missing; warn elsewhere."""
    missing: list[str] = []
    if not cfg.render.token_secret:
        missing.append("RENDER_TOKEN_SECRET")
    if not cfg.lulu.client_id:
        missing.append("LULU_CLIENT_ID")
    if not cfg.lulu.client_secret:
        missing.append("LULU_CLIENT_SECRET")
    if cfg.storage.backend == "firebase" and not cfg.storage.bucket:
        missing.append("FIREBASE_STORAGE_BUCKET")

    if missing and cfg.env == "production":
        print(
            f"\n  ERROR: Missing configuration: {', '.join(missing)}\n"
            f"  Copy .env.example → .env and fill in your keys.\n",
            file=sys.stderr,
        )
        sys.exit(1)

    if missing:
        logger.warning("Missing configuration (%s): %s", cfg.env, ", ".join(missing))

    if not cfg.render.token_secret:
        cfg = replace(cfg, render=replace(cfg.render, token_secret=DEV_RENDER_SECRET))
    return cfg


settings = _validate_config(_load_config())

"""Configuration loading for prbot.

Reads .prbot/config.yaml (optional) and applies environment overrides.
A missing config file yields the defaults, so the bot runs unconfigured
inside a GitHub Actions job.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


# ── Config Models ────────────────────────────────────────────────────────────


class ProjectConfig(BaseModel):
    owner: str = ""  # GitHub org/user; webhook mode rejects other repos when set
    repo: str = ""
    bot_username: str = "github-actions[bot]"  # Self-event filtering in webhook mode

    @property
    def full_name(self) -> str | None:
        if self.owner and self.repo:
            return f"{self.owner}/{self.repo}"
        return None


class AuthorizationConfig(BaseModel):
    """Who may issue commands, by comment ``author_association``.

    The user's org membership must be public for GitHub to report MEMBER.
    """

    trusted_associations: list[str] = Field(default_factory=lambda: ["OWNER", "MEMBER"])

    @field_validator("trusted_associations")
    @classmethod
    def _normalize(cls, v: list[str]) -> list[str]:
        return [a.strip().upper() for a in v if a.strip()]


class CIConfig(BaseModel):
    workflow_id: str = "ci-manual.yaml"
    ref: str | None = None  # None → repository default branch from the event
    mergeable_retries: int = 3
    mergeable_retry_delay: float = 2.0  # seconds
    workflow_input_prefix: str = "workflow:"

    @field_validator("mergeable_retries")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"mergeable_retries must be >= 0, got {v}")
        return v


class ServerConfig(BaseModel):
    public_url: str = "http://localhost:8000"  # Base for /logs links in replies
    rate_limit_max: int = 60  # webhook deliveries per minute (0 = unlimited)
    log_buffer_size: int = 20_000


class BotConfig(BaseModel):
    project: ProjectConfig = Field(default_factory=ProjectConfig)
    authorization: AuthorizationConfig = Field(default_factory=AuthorizationConfig)
    ci: CIConfig = Field(default_factory=CIConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)


def default_config_dir(repo_root: Path | None = None) -> Path:
    """PRBOT_CONFIG_DIR if set, else ``<repo_root>/.prbot``."""
    config_dir = os.environ.get("PRBOT_CONFIG_DIR", "").strip()
    if config_dir:
        return Path(config_dir)
    return (repo_root or Path.cwd()) / ".prbot"


def load_config(config_dir: Path | None = None) -> BotConfig:
    """Load bot configuration from a .prbot/ directory.

    Args:
        config_dir: Directory holding ``config.yaml``. Defaults to
            :func:`default_config_dir`.

    Returns:
        Validated BotConfig.

    Raises:
        pydantic.ValidationError: If config validation fails.
    """
    config_dir = config_dir or default_config_dir()
    config_path = config_dir / "config.yaml"
    raw: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
    else:
        logger.info("No config at %s; using defaults", config_path)

    config = BotConfig(**raw)

    # Environment variable overrides for deployment
    workflow = os.environ.get("PRBOT_CI_WORKFLOW")
    if workflow:
        config.ci.workflow_id = workflow

    ref = os.environ.get("PRBOT_CI_REF")
    if ref:
        config.ci.ref = ref

    public_url = os.environ.get("PRBOT_PUBLIC_URL")
    if public_url:
        config.server.public_url = public_url.rstrip("/")

    logger.info(
        "Loaded prbot config: workflow=%s trusted=%s",
        config.ci.workflow_id,
        config.authorization.trusted_associations,
    )
    return config

"""Configuration management with environment overrides."""

import base64
import os
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field
import logging

logger = logging.getLogger(__name__)

DEFAULT_ALLOW_PATTERNS = [
    "src/**",
    "supabase/**",
    "package.json",
    "tsconfig.json",
]


class GitHubAppConfig(BaseModel):
    """GitHub App installation credentials."""
    model_config = ConfigDict(frozen=True)

    app_id: Optional[int] = None
    installation_id: Optional[int] = None
    private_key: Optional[str] = None
    token: Optional[str] = Field(default=None, description="Static token; bypasses app auth")
    api_url: str = Field(default="https://api.github.com")
    default_owner: Optional[str] = None
    default_repo: Optional[str] = None
    max_retries: int = Field(default=3, ge=0)
    http_timeout_seconds: float = Field(default=15.0, gt=0)


class SecurityConfig(BaseModel):
    """Shared secrets checked on inbound requests."""
    model_config = ConfigDict(frozen=True)

    butler_token: Optional[str] = None
    workflow_edit_key: Optional[str] = None


class GateConfig(BaseModel):
    """Path gate and policy configuration."""
    model_config = ConfigDict(frozen=True)

    allow_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_ALLOW_PATTERNS))
    workflow_patterns: List[str] = Field(default_factory=lambda: [".github/workflows/**"])
    policy_path: Optional[str] = None


class ServerConfig(BaseModel):
    """HTTP server configuration."""
    model_config = ConfigDict(frozen=True)

    request_timeout_seconds: float = Field(default=25.0, gt=0)
    revision: str = Field(default="dev")
    cors_origins: List[str] = Field(default_factory=list)
    log_level: str = Field(default="INFO")
    structured_logs: bool = Field(default=True)


class AppConfig(BaseModel):
    """Application configuration."""
    model_config = ConfigDict(frozen=True)

    github: GitHubAppConfig = Field(default_factory=GitHubAppConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    gate: GateConfig = Field(default_factory=GateConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)


def _read_private_key() -> Optional[str]:
    if b64 := os.getenv("PRIVATE_KEY_BASE64"):
        return base64.b64decode(b64).decode("utf-8")
    if pem := os.getenv("PRIVATE_KEY"):
        return pem.replace("\\n", "\n")
    return None


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """Load configuration from file with environment overrides.

    Args:
        config_path: Path to config file (default: configs/butler.yaml)

    Returns:
        Loaded configuration
    """
    if config_path is None:
        config_path = os.getenv("BUTLER_CONFIG", "configs/butler.yaml")

    config_dict: Dict[str, Any] = {}

    # Load from file if exists
    if Path(config_path).exists():
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f) or {}
        logger.info(f"Loaded configuration from {config_path}")

    # Apply environment overrides
    github = config_dict.setdefault("github", {})
    if app_id := os.getenv("APP_ID"):
        github["app_id"] = int(app_id)
    if installation_id := os.getenv("INSTALLATION_ID"):
        github["installation_id"] = int(installation_id)
    if private_key := _read_private_key():
        github["private_key"] = private_key
    if github_token := os.getenv("GITHUB_TOKEN"):
        github["token"] = github_token
    if owner := os.getenv("REPO_OWNER"):
        github["default_owner"] = owner
    if repo := os.getenv("REPO_NAME"):
        github["default_repo"] = repo
    if api_url := os.getenv("GITHUB_API_URL"):
        github["api_url"] = api_url.rstrip("/")

    security = config_dict.setdefault("security", {})
    if butler_token := os.getenv("BUTLER_TOKEN"):
        security["butler_token"] = butler_token
    if workflow_key := os.getenv("WORKFLOW_EDIT_KEY"):
        security["workflow_edit_key"] = workflow_key

    gate = config_dict.setdefault("gate", {})
    if patterns := os.getenv("BUTLER_ALLOW_PATTERNS"):
        gate["allow_patterns"] = _split_list(patterns)
    if policy_path := os.getenv("BUTLER_POLICY_PATH"):
        gate["policy_path"] = policy_path

    server = config_dict.setdefault("server", {})
    if timeout := os.getenv("BUTLER_REQUEST_TIMEOUT"):
        server["request_timeout_seconds"] = float(timeout)
    if revision := os.getenv("GIT_REVISION") or os.getenv("RENDER_GIT_COMMIT"):
        server["revision"] = revision
    if origins := os.getenv("BUTLER_CORS_ORIGINS"):
        server["cors_origins"] = _split_list(origins)
    if log_level := os.getenv("LOG_LEVEL"):
        server["log_level"] = log_level.upper()

    return AppConfig(**config_dict)

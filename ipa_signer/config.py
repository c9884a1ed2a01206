"""Configuration with JSON file, config.yml, secrets.yml, and env variable support."""

import json
import os
import sys
from pathlib import Path

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ipa_signer.enums import StoreCategory


def _find_repo_root(*, start: Path) -> Path:
    """Best-effort repository root discovery.

    Relative paths in the config (work dir, log file, bundled tool dir) are
    resolved against the repo root so the service can be launched from any
    working directory.

    - first directory containing `pyproject.toml`
    - otherwise fall back to the current working directory
    """

    try:
        start = start.resolve()
        for p in [start, *start.parents]:
            if (p / "pyproject.toml").exists():
                return p
    except OSError:
        pass

    return Path.cwd()


def resolve_repo_path(raw: str | Path) -> Path:
    """Resolve a possibly-relative config path against the repo root."""
    p = Path(raw).expanduser()
    if not p.is_absolute():
        p = _find_repo_root(start=Path(__file__)) / p
    return p.resolve()


def _flatten_secrets_mapping(secrets: dict) -> dict:
    """Flatten nested secrets into SignerConfig-compatible keys.

        signing.tool_name -> signing_tool_name
        error_log.file_path -> error_log_file_path
    """
    flat = {}
    for section, values in secrets.items():
        if isinstance(values, dict):
            for key, value in values.items():
                flat[f"{section}_{key}"] = value
        else:
            flat[section] = values
    return flat


def _load_yaml_mapping(path: Path) -> dict:
    if not path.exists() or not path.is_file():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return data if isinstance(data, dict) else {}


def _default_upload_extensions() -> dict[str, str]:
    return {
        "ipa": ".ipa",
        "p12": ".p12",
        "mobileprovision": ".mobileprovision",
    }


class SignerConfig(BaseSettings):
    """Service configuration.

    Load order (later overrides earlier):
    1. config.json - base configuration
    2. config.yml - repo-root overlay for non-secret settings
    3. secrets.yml - sensitive values
    4. Environment variables - runtime overrides

    Prefix: SIGNER_ (e.g., SIGNER_PUBLIC_BASE_URL)
    """

    model_config = SettingsConfigDict(
        env_prefix="SIGNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Public URLs
    public_base_url: str = Field(
        default="https://sign.ayon1xw.me/",
        description="Origin used to build every published link. Always ends with '/'.",
    )

    # Ephemeral store
    work_dir: str = Field(default="./uploads")
    retention_seconds: int = Field(
        default=3600,
        description="Lifetime of a signed package, its manifest and its install record.",
    )
    expiry_sweep_interval_seconds: int = Field(default=300)

    # Intake
    max_upload_bytes: int = Field(default=5 * 1024 * 1024 * 1024)
    allowed_upload_extensions: dict[str, str] = Field(
        default_factory=_default_upload_extensions,
        description="Required filename extension per multipart file field.",
    )
    download_timeout_seconds: float = Field(default=300.0)
    download_chunk_bytes: int = Field(default=1024 * 1024)

    # External signing tool
    signing_tool_name: str = Field(default="zsign")
    bundled_tool_dir: str = Field(
        default=".",
        description="Directory holding the bundled signing binary used when none is on PATH.",
    )
    signing_timeout_seconds: float | None = Field(default=None)
    max_concurrent_signings: int = Field(
        default=4,
        ge=1,
        description="Worker slots for external signing processes; extra requests queue.",
    )

    # API settings
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=3000)
    log_level: str = Field(default="INFO")

    # Error log file
    error_log_file_enabled: bool = Field(default=True)
    error_log_file_path: str = Field(default="./logs/error.log")
    error_log_level: str = Field(default="WARNING")
    error_log_max_bytes: int = Field(default=10_485_760)
    error_log_backup_count: int = Field(default=5)

    # Observability / trace logging
    trace_enabled: bool = Field(
        default=True,
        description="Emit structured JSON trace events for each pipeline stage.",
    )
    trace_max_chars: int = Field(default=2000)
    health_stall_seconds: int = Field(default=900)

    def model_post_init(self, __context) -> None:  # type: ignore[override]
        """Normalize the public URL and resolve filesystem paths."""
        if not self.public_base_url.endswith("/"):
            self.public_base_url = self.public_base_url + "/"

        self.work_dir = str(resolve_repo_path(self.work_dir))
        self.bundled_tool_dir = str(resolve_repo_path(self.bundled_tool_dir))

        self.allowed_upload_extensions = {
            field: ext.lower() if ext.startswith(".") else f".{ext.lower()}"
            for field, ext in self.allowed_upload_extensions.items()
        }

    @property
    def work_root(self) -> Path:
        return Path(self.work_dir)

    def category_dir(self, category: StoreCategory) -> Path:
        """Directory for one ephemeral store category."""
        return self.work_root / category.value

    @property
    def bundled_tool_path(self) -> Path:
        """Location of the fallback signing binary shipped next to the service."""
        name = self.signing_tool_name
        if sys.platform == "win32" and not name.lower().endswith(".exe"):
            name = f"{name}.exe"
        return Path(self.bundled_tool_dir) / name

    @classmethod
    def from_json_file(
        cls,
        config_path: str = "config.json",
        secrets_path: str = "secrets.yml",
    ) -> "SignerConfig":
        """Load config from JSON + config.yml + secrets.yml with env var overrides.

        Args:
            config_path: Path to JSON config file.
            secrets_path: Path to secrets YAML file.

        Returns:
            Configured SignerConfig instance.
        """
        config_data = {}

        json_path = Path(config_path)
        if json_path.exists():
            with open(json_path) as f:
                config_data = json.load(f)

        # Precedence: config.json < config.yml < secrets.yml < env
        repo_root = _find_repo_root(start=Path(__file__))
        config_data.update(_load_yaml_mapping(repo_root / "config.yml"))

        config_data.update(_flatten_secrets_mapping(_load_yaml_mapping(Path(secrets_path))))

        # Drop file values that an env var overrides so pydantic-settings sees the env value
        env_prefix = "SIGNER_"
        for key in [k for k in config_data if f"{env_prefix}{k.upper()}" in os.environ]:
            del config_data[key]

        return cls(**config_data)

"""Configuration system for Perf Sentinel with precedence handling.

Sources, highest precedence first:
CLI flags > environment variables (.env files included) > config file > defaults

Every source is reduced to a nested dict ("layer") and the layers are
folded over each other before a single pydantic validation pass.
"""

import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple

import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, field_validator

from .audit.engine import EngineType
from .errors import ConfigurationError
from .scheduling.cron import CronSchedule, CronValidationError


def split_urls(value: Any) -> List[str]:
    """Accept a comma-separated string or a list; strip blanks."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [str(url).strip() for url in value if str(url).strip()]


def _one_of(value: str, allowed: Tuple[str, ...], field_name: str) -> str:
    if value.lower() not in allowed:
        raise ValueError(f"{field_name} must be one of: {', '.join(allowed)}")
    return value.lower()


class SheetsConfig(BaseModel):
    """Tabular store: Google Sheets, or a CSV file for development."""
    backend: str = Field(default="sheets", description="sheets or csv")
    spreadsheet_id: Optional[str] = Field(default=None, description="Destination spreadsheet")
    range: str = Field(default="2024!A1", description="Sheet name and row anchor")
    credentials_path: Optional[Path] = Field(default=None, description="Service-account key file")
    value_input_option: str = Field(default="RAW", description="Sheets valueInputOption")
    csv_path: Path = Field(default=Path("results.csv"), description="CSV backend file")

    @field_validator('backend')
    @classmethod
    def check_backend(cls, v):
        return _one_of(v, ('sheets', 'csv'), 'sheets.backend')


class ArchiveConfig(BaseModel):
    """Report archive: an S3 bucket, or a local directory for development."""
    backend: str = Field(default="s3", description="s3 or local")
    bucket: Optional[str] = Field(default=None, description="Archive bucket")
    key_prefix: str = Field(default="", description="Key prefix inside the bucket")
    region: str = Field(default="us-east-1", description="AWS region")
    endpoint_url: Optional[str] = Field(default=None, description="S3-compatible endpoint")
    access_key_id: Optional[str] = Field(default=None, repr=False)
    secret_access_key: Optional[str] = Field(default=None, repr=False)
    root: Path = Field(default=Path("artifacts"), description="Local backend directory")
    include_links: bool = Field(default=True, description="Write the report URL column")

    @field_validator('backend')
    @classmethod
    def check_backend(cls, v):
        return _one_of(v, ('s3', 'local'), 'archive.backend')


class AuditConfig(BaseModel):
    """Audit engine configuration."""
    engine: str = Field(default=EngineType.CLI, description="cli or chromium")
    lighthouse_path: str = Field(default="lighthouse", description="Lighthouse executable")
    chrome_flags: List[str] = Field(default_factory=lambda: ["--headless"])
    timeout_seconds: float = Field(default=300.0, ge=10.0, le=3600.0)
    headless: bool = Field(default=True, description="Headless Chromium (chromium engine)")
    working_dir: Path = Field(default=Path("outputs"), description="Transient report directory")

    @field_validator('engine')
    @classmethod
    def check_engine(cls, v):
        return _one_of(v, (EngineType.CLI, EngineType.CHROMIUM), 'audit.engine')


class ScheduleConfig(BaseModel):
    cron: str = Field(default="0 * * * *", description="Cron expression")
    timezone: str = Field(default="UTC", description="IANA timezone for the cron")


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    log_dir: Path = Field(default=Path("logs"))
    filename: str = Field(default="combined.log")
    retention_days: int = Field(default=14, ge=1)
    max_bytes: int = Field(default=20 * 1024 * 1024, ge=0, description="Size cap per log file, 0 disables")
    json_format: bool = Field(default=True)
    console: bool = Field(default=True)


class SentinelConfiguration(BaseModel):
    """Complete configuration with all sections."""

    urls: List[str] = Field(default_factory=list, description="Pages to audit")

    sheets: SheetsConfig = Field(default_factory=SheetsConfig)
    archive: ArchiveConfig = Field(default_factory=ArchiveConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # Provenance, not settings
    config_file_path: Optional[Path] = Field(default=None)
    loaded_from: List[str] = Field(default_factory=list)

    @field_validator('urls', mode='before')
    @classmethod
    def normalize_urls(cls, v):
        return split_urls(v)


def _flag(value: str) -> bool:
    return value.strip().lower() in ('true', '1', 'yes', 'on')


class EnvBinding(NamedTuple):
    """One environment variable feeding one dotted configuration key."""
    variable: str
    key: str
    parse: Callable[[str], Any] = str


PREFIX = "PERF_SENTINEL_"

ENV_BINDINGS: List[EnvBinding] = [
    # Names used by existing deployments, kept unprefixed
    EnvBinding("TARGET_URL", "urls", split_urls),
    EnvBinding("SPREADSHEET_ID", "sheets.spreadsheet_id"),
    EnvBinding("SHEET_RANGE", "sheets.range"),
    EnvBinding("GOOGLE_CREDENTIALS_PATH", "sheets.credentials_path"),
    EnvBinding("S3_BUCKET_NAME", "archive.bucket"),
    EnvBinding("AWS_REGION", "archive.region"),
    EnvBinding("AWS_ACCESS_KEY_ID", "archive.access_key_id"),
    EnvBinding("AWS_SECRET_ACCESS_KEY", "archive.secret_access_key"),

    EnvBinding(PREFIX + "URLS", "urls", split_urls),
    EnvBinding(PREFIX + "SHEETS_BACKEND", "sheets.backend"),
    EnvBinding(PREFIX + "CSV_PATH", "sheets.csv_path"),
    EnvBinding(PREFIX + "ARCHIVE_BACKEND", "archive.backend"),
    EnvBinding(PREFIX + "ARCHIVE_PREFIX", "archive.key_prefix"),
    EnvBinding(PREFIX + "ARCHIVE_ROOT", "archive.root"),
    EnvBinding(PREFIX + "S3_ENDPOINT_URL", "archive.endpoint_url"),
    EnvBinding(PREFIX + "REPORT_LINKS", "archive.include_links", _flag),
    EnvBinding(PREFIX + "ENGINE", "audit.engine"),
    EnvBinding(PREFIX + "LIGHTHOUSE_PATH", "audit.lighthouse_path"),
    EnvBinding(PREFIX + "CHROME_FLAGS", "audit.chrome_flags", str.split),
    EnvBinding(PREFIX + "TIMEOUT", "audit.timeout_seconds", float),
    EnvBinding(PREFIX + "HEADLESS", "audit.headless", _flag),
    EnvBinding(PREFIX + "WORKING_DIR", "audit.working_dir"),
    EnvBinding(PREFIX + "CRON", "schedule.cron"),
    EnvBinding(PREFIX + "TIMEZONE", "schedule.timezone"),
    EnvBinding(PREFIX + "LOG_LEVEL", "logging.level"),
    EnvBinding(PREFIX + "LOG_DIR", "logging.log_dir"),
    EnvBinding(PREFIX + "LOG_RETENTION_DAYS", "logging.retention_days", int),
    EnvBinding(PREFIX + "LOG_MAX_BYTES", "logging.max_bytes", int),
    EnvBinding(PREFIX + "LOG_JSON", "logging.json_format", _flag),
]


def read_config_file(path: Path) -> Dict[str, Any]:
    """Parse a YAML or JSON config file into a dict.

    Raises:
        ValueError: Unknown suffix or unparsable content
    """
    suffix = path.suffix.lower()
    text = path.read_text(encoding='utf-8')

    if suffix in ('.yaml', '.yml'):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in config file {path}: {e}") from e
    elif suffix == '.json':
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in config file {path}: {e}") from e
    else:
        raise ValueError(f"Unsupported config file format: {suffix}")

    return data or {}


def deep_merge(base: Dict[str, Any], layer: Dict[str, Any]) -> Dict[str, Any]:
    """Return ``base`` overlaid with ``layer``; nested dicts merge key by key."""
    merged = dict(base)
    for key, value in layer.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            value = deep_merge(merged[key], value)
        merged[key] = value
    return merged


def assign(tree: Dict[str, Any], dotted_key: str, value: Any) -> None:
    *parents, leaf = dotted_key.split('.')
    for part in parents:
        tree = tree.setdefault(part, {})
    tree[leaf] = value


class ConfigurationLoader:
    """Collects configuration layers and validates the merged result."""

    CONFIG_FILE_NAMES = (
        "perf-sentinel.yaml",
        "perf-sentinel.yml",
        ".perf-sentinel.yaml",
        ".perf-sentinel.yml",
        "perf-sentinel.json",
    )

    def __init__(self, bindings: Optional[List[EnvBinding]] = None):
        self.bindings = ENV_BINDINGS if bindings is None else bindings
        self.loaded_sources: List[str] = []

    def variables(self) -> List[str]:
        """Every environment variable the loader reads."""
        return [binding.variable for binding in self.bindings]

    def load_configuration(
        self,
        config_file: Optional[Path] = None,
        cli_overrides: Optional[Dict[str, Any]] = None,
        search_paths: Optional[List[Path]] = None,
        env_file: Optional[Path] = None,
    ) -> SentinelConfiguration:
        """Load configuration with proper precedence.

        Args:
            config_file: Explicit config file; skips discovery when given
            cli_overrides: Nested dict of values set by CLI flags
            search_paths: Directories searched for a config file
            env_file: .env file to load (default: discover from the working directory)

        Raises:
            FileNotFoundError: ``config_file`` does not exist
            ValueError: A config file cannot be parsed
        """
        self.loaded_sources = ["defaults"]
        layers: List[Dict[str, Any]] = []

        file_layer = self._file_layer(config_file, search_paths or [Path.cwd()])
        if file_layer:
            layers.append(file_layer)

        # .env values never override variables already set in the process
        dotenv_path = env_file or find_dotenv(usecwd=True)
        if dotenv_path and load_dotenv(dotenv_path=dotenv_path, override=False):
            self.loaded_sources.append(f"dotenv: {dotenv_path}")

        env_layer = self._environment_layer()
        if env_layer:
            layers.append(env_layer)
            self.loaded_sources.append("environment variables")

        if cli_overrides:
            layers.append(cli_overrides)
            self.loaded_sources.append("CLI flags")

        merged: Dict[str, Any] = {}
        for layer in layers:
            merged = deep_merge(merged, layer)

        merged.update(loaded_from=self.loaded_sources, config_file_path=config_file)
        return SentinelConfiguration(**merged)

    def _file_layer(self, config_file: Optional[Path], search_paths: List[Path]) -> Dict[str, Any]:
        if config_file:
            if not config_file.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_file}")
            self.loaded_sources.append(f"config file: {config_file}")
            return read_config_file(config_file)

        candidates = (directory / name for directory in search_paths for name in self.CONFIG_FILE_NAMES)
        found = next((path for path in candidates if path.is_file()), None)
        if found is None:
            return {}
        self.loaded_sources.append(f"auto-discovered: {found}")
        return read_config_file(found)

    def _environment_layer(self) -> Dict[str, Any]:
        layer: Dict[str, Any] = {}
        for binding in self.bindings:
            raw = os.getenv(binding.variable)
            if raw:
                assign(layer, binding.key, binding.parse(raw))
        return layer


def load_configuration(
    config_file: Optional[Path] = None,
    cli_overrides: Optional[Dict[str, Any]] = None,
    search_paths: Optional[List[Path]] = None,
    env_file: Optional[Path] = None,
) -> SentinelConfiguration:
    return ConfigurationLoader().load_configuration(config_file, cli_overrides, search_paths, env_file)


SECRET_FIELDS = ('access_key_id', 'secret_access_key')


def print_configuration(config: SentinelConfiguration, format: str = "yaml") -> str:
    """Render configuration for debugging with secrets masked."""
    rendered = config.model_dump(mode="json", exclude={'loaded_from', 'config_file_path'})
    archive = rendered['archive']
    for secret in SECRET_FIELDS:
        if archive.get(secret):
            archive[secret] = "***"

    if format.lower() == "json":
        return json.dumps(rendered, indent=2)
    return yaml.safe_dump(rendered, default_flow_style=False, sort_keys=True)


def validate_configuration(config: SentinelConfiguration) -> List[str]:
    """Collect every problem that would stop the pipeline from starting.

    Checks cross-field requirements pydantic cannot express: settings that
    only matter for the selected backends, and the schedule.
    """
    problems = []

    if not config.urls:
        problems.append("No URLs configured (set TARGET_URL or urls)")

    sheets = config.sheets
    if sheets.backend == "sheets":
        if not sheets.spreadsheet_id:
            problems.append("SPREADSHEET_ID is required for the sheets backend")
        if not sheets.credentials_path:
            problems.append("GOOGLE_CREDENTIALS_PATH is required for the sheets backend")
        elif not Path(sheets.credentials_path).exists():
            problems.append(f"Google credentials file not found: {sheets.credentials_path}")

    if config.archive.backend == "s3" and not config.archive.bucket:
        problems.append("S3_BUCKET_NAME is required for the s3 backend")

    try:
        CronSchedule(config.schedule.cron, config.schedule.timezone)
    except CronValidationError as e:
        problems.append(str(e))

    return problems


def require_valid_configuration(config: SentinelConfiguration) -> SentinelConfiguration:
    """Raise ConfigurationError when required settings are missing."""
    problems = validate_configuration(config)
    if problems:
        raise ConfigurationError(problems)
    return config

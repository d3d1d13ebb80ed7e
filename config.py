"""Configuration management for FinControl.

Reads configuration from ~/.config/fincontrol.toml and creates default config if needed.
"""

from pathlib import Path
from dataclasses import dataclass
import tomllib
import tomli_w

DEFAULT_ADVICE_SAMPLE_SIZE = 50


@dataclass
class Config:
    """Application configuration."""

    base_dir: Path
    db_data_dir: Path
    db_filename: str
    log_level: str
    log_dir: Path
    user_id: str = "local"
    llm_enabled: bool = False
    llm_provider: str = "openai"
    llm_openai_api_key: str = ""
    llm_openai_model: str = "gpt-4o-mini"
    advice_sample_size: int = DEFAULT_ADVICE_SAMPLE_SIZE

    @property
    def db_path(self) -> Path:
        """Get the full database path (data_dir/filename)."""
        return self.db_data_dir / self.db_filename

    @classmethod
    def default(cls) -> "Config":
        """Create a Config with default values."""
        home = Path.home()
        base_dir = home / "data" / "fincontrol"
        return cls(
            base_dir=base_dir,
            db_data_dir=base_dir / "db",
            db_filename="fincontrol.db",
            log_level="INFO",
            log_dir=base_dir / "logs",
        )


def get_config_path() -> Path:
    """Get the path to the config file."""
    return Path.home() / ".config" / "fincontrol.toml"


def get_migrations_dir() -> Path:
    """Get the path to the migrations directory.

    This is always relative to the code location, not configurable.
    """
    return Path(__file__).parent / "db" / "migrations"


def load_config() -> Config:
    """Load configuration from file, creating default if it doesn't exist.

    Returns:
        Config object with loaded or default values.
    """
    config_path = get_config_path()

    if not config_path.exists():
        config = Config.default()
        _write_config(config)
        return config

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    return _config_from_dict(data)


def _config_from_dict(data: dict) -> Config:
    """Build a Config from parsed TOML, filling defaults for missing values."""
    defaults = Config.default()
    base_dir = Path(data.get("base_dir", defaults.base_dir))

    db_config = data.get("database", {})
    db_data_dir = Path(db_config.get("data_dir", base_dir / "db"))
    db_filename = db_config.get("filename", defaults.db_filename)

    log_config = data.get("logging", {})
    log_level = log_config.get("level", defaults.log_level)
    log_dir = Path(log_config.get("log_dir", base_dir / "logs"))

    ledger_config = data.get("ledger", {})
    user_id = ledger_config.get("user_id", defaults.user_id)

    llm_config = data.get("llm", {})
    advice_sample_size = int(
        llm_config.get("advice_sample_size", DEFAULT_ADVICE_SAMPLE_SIZE)
    )
    if advice_sample_size < 1:
        raise ValueError("llm.advice_sample_size must be at least 1")

    return Config(
        base_dir=base_dir,
        db_data_dir=db_data_dir,
        db_filename=db_filename,
        log_level=log_level,
        log_dir=log_dir,
        user_id=user_id,
        llm_enabled=llm_config.get("enabled", defaults.llm_enabled),
        llm_provider=llm_config.get("provider", defaults.llm_provider),
        llm_openai_api_key=llm_config.get("openai_api_key", ""),
        llm_openai_model=llm_config.get("openai_model", defaults.llm_openai_model),
        advice_sample_size=advice_sample_size,
    )


def _write_config(config: Config) -> None:
    """Write config to the config file.

    Args:
        config: Config object to write.
    """
    config_path = get_config_path()

    config_path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "base_dir": str(config.base_dir),
        "database": {
            "data_dir": str(config.db_data_dir),
            "filename": config.db_filename,
        },
        "logging": {
            "level": config.log_level,
            "log_dir": str(config.log_dir),
        },
        "ledger": {
            "user_id": config.user_id,
        },
        "llm": {
            "enabled": config.llm_enabled,
            "provider": config.llm_provider,
            "openai_api_key": config.llm_openai_api_key,
            "openai_model": config.llm_openai_model,
            "advice_sample_size": config.advice_sample_size,
        },
    }

    with open(config_path, "wb") as f:
        tomli_w.dump(data, f)

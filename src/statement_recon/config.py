"""Configuration management for StatementRecon."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="STATEMENT_RECON_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application data tree
    base_dir: Path = Path(".")
    data_dir: str = "data"  # Bank statements, relative to base_dir
    accounts_file: str = "parametre/account.json"  # Relative to base_dir

    # CSV format
    csv_delimiter: str = Field(default=";", min_length=1, max_length=1)
    csv_encoding: str = "utf-8"

    @property
    def accounts_path(self) -> Path:
        """Absolute location of the account directory JSON file."""
        return self.base_dir / self.accounts_file


def load_settings() -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load settings. Check the STATEMENT_RECON_* variables "
            f"in your environment or .env file.\n"
            f"Error: {e}"
        ) from e

"""
Centralized settings and path configuration for the offer engine.
"""
import logging
import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    # Walk up from this file to find the project root
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 3 levels up from this file
    return Path(__file__).resolve().parent.parent.parent.parent


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Project paths
    project_root: Path
    data_dir: Path

    # Catalog exports
    offers_csv: Path
    products_csv: Path

    # Pricing context
    default_user_type: str = 'retail'
    wholesale_user_types: tuple = ('wholesale', 'admin')

    log_level: str = 'INFO'

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> 'Settings':
        """Load settings from the project structure and environment."""
        root = project_root or get_project_root()
        data_dir = Path(os.environ.get('OFFER_ENGINE_DATA_DIR', root / 'data'))
        wholesale = os.environ.get('OFFER_ENGINE_WHOLESALE_USER_TYPES', 'wholesale,admin')

        return cls(
            project_root=root,
            data_dir=data_dir,
            offers_csv=data_dir / 'offers.csv',
            products_csv=data_dir / 'products.csv',
            wholesale_user_types=tuple(t.strip() for t in wholesale.split(',') if t.strip()),
            log_level=os.environ.get('OFFER_ENGINE_LOG_LEVEL', 'INFO').upper(),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def configure_logging(level: Optional[str] = None):
    """Set up root logging once for scripts and the API."""
    root = logging.getLogger()
    if root.handlers:
        return
    logging.basicConfig(
        level=getattr(logging, (level or get_settings().log_level), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

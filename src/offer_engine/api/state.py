"""Shared engine instance for the API."""
from ..config.settings import configure_logging
from ..engine import OfferEngine

configure_logging()

engine = OfferEngine.from_settings()


def reload_engine() -> OfferEngine:
    """Re-read the catalog exports from disk."""
    global engine
    engine = OfferEngine.from_settings(engine.settings)
    return engine

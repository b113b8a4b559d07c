from .config import Settings, load_settings
from .pipeline import Pipeline, build_pipeline

__all__ = ["Pipeline", "Settings", "build_pipeline", "load_settings"]

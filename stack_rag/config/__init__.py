"""Configuration: environment settings and the YAML config loader."""

from stack_rag.config.loader import load_rag_config
from stack_rag.config.settings import Settings

__all__ = ["Settings", "load_rag_config"]

"""PlayBridge - playlist interchange pipeline for self-hosted music libraries."""

__version__ = "0.1.0"

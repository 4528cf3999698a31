"""
Configuration Module
====================

Centralized configuration management using Pydantic Settings.
Loads from environment variables with type validation and defaults.

Usage:
    from taxproof.config import get_settings

    settings = get_settings()
    print(settings.environment)
    print(settings.chain.mode)
"""

from taxproof.config.settings import (
    ChainMode,
    ChainSettings,
    Environment,
    LogLevel,
    ProofBackendKind,
    Settings,
    ZKSettings,
    get_settings,
)


__all__ = [
    "Settings",
    "ChainSettings",
    "ZKSettings",
    "get_settings",
    "Environment",
    "LogLevel",
    "ChainMode",
    "ProofBackendKind",
]

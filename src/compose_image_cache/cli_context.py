"""
CLI Context for managing application dependencies.

Provides a clean way to manage CLI-level dependencies like settings and the
run's adapters, avoiding global state and enabling proper dependency injection.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from .runner import Collaborators, build_collaborators
from .settings import Settings, create_settings_from_env


@dataclass
class CLIContext:
    """
    Shared context for CLI commands.

    Manages application-level dependencies (settings, adapters) that are
    initialized once and shared across a CLI command execution.
    """
    settings: Settings
    _collaborators: Optional[Collaborators] = None

    @classmethod
    def from_env(
        cls,
        *,
        cache_key_prefix: Optional[str] = None,
        skip_latest_check: Optional[bool] = None,
    ) -> CLIContext:
        """
        Create CLI context from environment variables.

        Explicit CLI flags take precedence over their environment variables.
        """
        settings = create_settings_from_env()
        overrides = {}
        if cache_key_prefix:
            overrides["cache_key_prefix"] = cache_key_prefix
        if skip_latest_check:
            overrides["skip_latest_check"] = True
        if overrides:
            # replace() re-runs __post_init__ validation
            settings = replace(settings, **overrides)
        return cls(settings=settings)

    @property
    def collaborators(self) -> Collaborators:
        """
        Get or create the run's adapters (lazy initialization).

        Commands that never touch docker or the cache (images, key) do not
        pay for building them.
        """
        if self._collaborators is None:
            self._collaborators = build_collaborators(self.settings)
        return self._collaborators

"""XDG-compliant configuration management for ticketflow."""

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from ticketflow.engine.errors import RetryPolicy
from ticketflow.engine.settings import DEFAULT_INSTRUCTIONS, OrchestratorSettings
from ticketflow.engine.signals import SignalMatchers

# Use tomllib for Python 3.11+, tomli for earlier versions
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


class ConfigError(Exception):
    """Raised when the configuration file cannot be loaded or is invalid."""

    pass


@dataclass(frozen=True)
class ProviderSettings:
    """Settings of the concrete collaborators built by the factory.

    Attributes:
        tickets_file: YAML tickets file read by the issue tracker
        repo_path: Local git repository the worktrees belong to
        remote: Git remote pushed to and rebased from
        github_repo: Optional "owner/name" passed to gh
        agent_command: Claude CLI executable
        agent_flags: Extra flags for every Claude invocation
        agent_timeout: Seconds before an agent run is killed (None = no limit)
        interval: Seconds between passes in continuous mode
    """

    tickets_file: Path = Path("tickets.yaml")
    repo_path: Path = Path(".")
    remote: str = "origin"
    github_repo: Optional[str] = None
    agent_command: str = "claude"
    agent_flags: List[str] = field(default_factory=list)
    agent_timeout: Optional[float] = 3600
    interval: float = 300.0


class Config:
    """Manages ticketflow configuration following XDG Base Directory spec.

    Attributes:
        config_dir: Path to ~/.config/ticketflow/
        config_file: Path to ~/.config/ticketflow/config.toml, or the
            explicit path given to the constructor
    """

    def __init__(self, config_file: Optional[Path] = None):
        """Initialize config paths using XDG Base Directory specification.

        Args:
            config_file: Explicit config file overriding the XDG location

        Raises:
            ConfigError: If the config file exists but cannot be parsed
        """
        self.config_dir = self.default_path().parent
        self.config_file = Path(config_file) if config_file else self.default_path()

        # Load config if exists
        self._config = self._load() if self.config_file.exists() else {}

    @staticmethod
    def default_path() -> Path:
        """Return the XDG config file location."""
        # Use XDG_CONFIG_HOME if set, otherwise default to ~/.config
        xdg_config = os.getenv("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
        return Path(xdg_config) / "ticketflow" / "config.toml"

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_file.exists()

    def _load(self) -> dict:
        """Load configuration from TOML file."""
        try:
            with open(self.config_file, "rb") as f:
                return tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Failed to load config {self.config_file}: {e}") from e

    def get(self, key: str, default=None):
        """Get configuration value by key (supports dot notation).

        Args:
            key: Configuration key (e.g., 'agent.cli_command')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key.split(".")
        value = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def _path(self, key: str, default: str) -> Path:
        return Path(os.path.expanduser(str(self.get(key, default))))

    def settings(self) -> "tuple[OrchestratorSettings, ProviderSettings]":
        """Resolve and validate the configuration.

        Returns:
            Tuple of (engine settings, provider settings)

        Raises:
            ConfigError: If any value is missing a valid type or range
        """
        try:
            repo_path = self._path("git.repo_path", ".")
            worktree_root = self._path("git.worktree_root", ".worktrees")
            if not worktree_root.is_absolute():
                worktree_root = repo_path / worktree_root

            retry = RetryPolicy(
                max_retries=int(self.get("retry.max_retries", 3)),
                base_delay=float(self.get("retry.base_delay", 1.0)),
                factor=float(self.get("retry.factor", 2.0)),
                max_delay=float(self.get("retry.max_delay", 60.0)),
            )
            matchers = SignalMatchers.from_config(
                reprocess=self._string_list(
                    "signals.reprocess", ["/reprocess", "verdict:CHANGES_REQUESTED"]
                ),
                approval=self._string_list("signals.approval", ["/approve", "verdict:APPROVED"]),
            )
            orchestrator = OrchestratorSettings(
                max_concurrent_agents=int(self.get("orchestrator.max_concurrent_agents", 4)),
                branch_prefix=str(self.get("git.branch_prefix", "ticket")),
                main_branch=str(self.get("git.main_branch", "main")),
                worktree_root=worktree_root,
                merge_strategy=str(self.get("forge.merge_strategy", "squash")),
                matchers=matchers,
                retry=retry,
                instructions=str(self.get("agent.instructions", DEFAULT_INSTRUCTIONS)),
            )

            timeout = self.get("agent.timeout", 3600)
            providers = ProviderSettings(
                tickets_file=self._path("tracker.tickets_file", "tickets.yaml"),
                repo_path=repo_path,
                remote=str(self.get("git.remote", "origin")),
                github_repo=self.get("forge.repo"),
                agent_command=str(self.get("agent.cli_command", "claude")),
                agent_flags=self._string_list("agent.cli_flags", []),
                agent_timeout=float(timeout) if timeout else None,
                interval=float(self.get("orchestrator.interval", 300)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration in {self.config_file}: {e}") from e

        if providers.interval < 0:
            raise ConfigError("orchestrator.interval must not be negative")
        return orchestrator, providers

    def _string_list(self, key: str, default: List[str]) -> List[str]:
        value = self.get(key, default)
        if isinstance(value, str):
            return [value]
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValueError(f"{key} must be a list of strings")
        return list(value)

    @staticmethod
    def get_default_config() -> str:
        """Return default configuration TOML template."""
        return """# Ticketflow Configuration
# Location: ~/.config/ticketflow/config.toml
# Follows XDG Base Directory Specification

[orchestrator]
# Maximum number of agents running at the same time
max_concurrent_agents = 4

# Seconds between passes in continuous mode (ticketflow run)
interval = 300

[tracker]
# YAML tickets file (relative paths resolve against the working directory)
tickets_file = "tickets.yaml"

[git]
# Repository the ticket worktrees are created from
repo_path = "."

# Branch merge requests target
main_branch = "main"

# Ticket branches are named <branch_prefix>/<ticket-id>
branch_prefix = "ticket"

# Directory holding one worktree per ticket (relative to repo_path)
worktree_root = ".worktrees"

# Remote pushed to and rebased from
remote = "origin"

[forge]
# How approved merge requests are merged: "squash", "merge" or "rebase"
merge_strategy = "squash"

# GitHub repository (optional, inferred from the clone)
# repo = "owner/name"

[agent]
# Claude CLI command (override if using custom path)
cli_command = "claude"

# Additional CLI flags (optional)
# cli_flags = ["--model", "sonnet"]

# Seconds before an agent run is killed
timeout = 3600

# Standing instructions included in every agent prompt (optional)
# instructions = "Follow the conventions in CONTRIBUTING.md."

[signals]
# Markers in review comments. Plain text matches case-insensitively,
# "re:" prefixes a regular expression, "verdict:" matches the review verdict.
reprocess = ["/reprocess", "verdict:CHANGES_REQUESTED"]
approval = ["/approve", "verdict:APPROVED"]

[retry]
# Retries for transient failures (network, lock contention)
max_retries = 3
base_delay = 1.0
factor = 2.0
"""

    def create_default(self) -> Path:
        """Create default configuration file.

        Returns:
            Path to created config file

        Raises:
            FileExistsError: If config already exists
        """
        if self.config_file.exists():
            raise FileExistsError(
                f"Configuration already exists: {self.config_file}\n"
                "Remove it first or use --force to overwrite"
            )

        # Create config directory
        self.config_file.parent.mkdir(parents=True, exist_ok=True)

        # Write default config
        self.config_file.write_text(self.get_default_config())

        return self.config_file

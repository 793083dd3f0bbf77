"""Composition point wiring the concrete providers into an Orchestrator."""

from __future__ import annotations

import logging
from typing import Optional

from ticketflow.core.claude import ClaudeRunner
from ticketflow.core.config import Config, ProviderSettings
from ticketflow.engine.orchestrator import Orchestrator
from ticketflow.engine.settings import OrchestratorSettings
from ticketflow.providers.claude_agent import ClaudeCodeAgent
from ticketflow.providers.git_worktrees import GitWorktreeManager
from ticketflow.providers.github_forge import GitHubForge
from ticketflow.providers.yaml_tracker import YamlIssueTracker

logger = logging.getLogger(__name__)


def build_orchestrator(
    config: Config,
    settings: Optional[OrchestratorSettings] = None,
    providers: Optional[ProviderSettings] = None,
) -> Orchestrator:
    """Build an Orchestrator from configuration.

    Args:
        config: Loaded configuration
        settings: Already resolved engine settings (resolved from config if None)
        providers: Already resolved provider settings (resolved from config if None)

    Returns:
        Orchestrator wired to the YAML tracker, Claude agent, GitHub forge
        and git worktree manager

    Raises:
        ConfigError: If the configuration is invalid
    """
    if settings is None or providers is None:
        settings, providers = config.settings()

    logger.debug(
        f"Building orchestrator: tickets={providers.tickets_file} "
        f"repo={providers.repo_path} agents={settings.max_concurrent_agents}"
    )
    return Orchestrator(
        tracker=YamlIssueTracker(providers.tickets_file, branch_prefix=settings.branch_prefix),
        agent=ClaudeCodeAgent(
            runner=ClaudeRunner(
                cli_command=providers.agent_command,
                cli_flags=providers.agent_flags,
                timeout=providers.agent_timeout,
            )
        ),
        forge=GitHubForge(repo_path=providers.repo_path, repo=providers.github_repo),
        worktrees=GitWorktreeManager(
            repo_path=providers.repo_path,
            main_branch=settings.main_branch,
            remote=providers.remote,
        ),
        settings=settings,
    )

"""
factory - Composition root for the agent workflow engine.

ALL dependency wiring happens here. No other module constructs its own
dependencies. The CLI (and any other adapter) calls this factory to get
fully configured agents, teams and agencies.

Usage:
    from factory import AgencyFactory
    from infrastructure.config import Settings

    factory = AgencyFactory(Settings.from_env())
    factory.register_tool(WebSearchTool())

    config = factory.load_config("agency.json")
    agency = factory.create_agency(config)
    result = await agency.execute_workflow("article", {"user": "cli"})
"""

from __future__ import annotations

import functools
import logging
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Union

from agent.executor import Agent, apply_provider_overrides
from agent.memory import MemoryStore
from agent.tools.handler import ToolCallHandler
from agent.tools.registry import ToolRegistry
from application.events import EventBus
from application.services.agency import Agency, AgencyConfig
from application.services.team import Team, TeamConfig
from application.services.workflow_runner import ErrorHandler
from domain.exceptions import ConfigurationError
from domain.models import AgentConfig
from domain.ports import LLMClientPort, ToolPort
from infrastructure.config import Settings
from infrastructure.config_loader import load_config
from infrastructure.llm.langchain_client import LangChainLLMClient
from infrastructure.llm.llm_builder import build_llm

logger = logging.getLogger(__name__)

LLMClientFactory = Callable[[str], LLMClientPort]


class AgencyFactory:
    """Composition root. Wires agents, teams and agencies together.

    One EventBus and one ToolCallHandler are shared by everything this
    factory builds. Tools are registered once and attached to agents by
    the names listed in each agent's config.
    """

    def __init__(
        self,
        config: Settings,
        *,
        llm_client_factory: Optional[LLMClientFactory] = None,
        bus: EventBus | None = None,
    ):
        self._config = config
        self._bus = bus or EventBus()
        self._tools = ToolRegistry()
        self._tool_handler = ToolCallHandler(
            retry_attempts=config.tool_retry_attempts,
            retry_delay=config.tool_retry_delay,
        )
        self._llm_client_factory = llm_client_factory or self._build_llm_client
        self._llm_clients: dict[str, LLMClientPort] = {}

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def settings(self) -> Settings:
        return self._config

    # ------------------------------------------------------------------
    # Tools and configuration
    # ------------------------------------------------------------------

    def register_tool(self, tool: ToolPort) -> None:
        """Make a tool available to agents that list it by name."""
        self._tools.register(tool)
        logger.info("Registered tool '%s'", tool.name)

    def load_config(self, path: Union[str, Path]) -> dict[str, Any]:
        return load_config(path, base_dir=self._config.config_dir)

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    def create_agent(self, agent_id: str, raw: Union[Mapping[str, Any], AgentConfig]) -> Agent:
        """Create one agent from its configuration record."""
        config = raw if isinstance(raw, AgentConfig) else AgentConfig.from_dict(agent_id, dict(raw))

        tools = []
        for name in config.tools:
            tool = self._tools.lookup(name)
            if tool is None:
                raise ConfigurationError(
                    f"Agent '{config.agent_id}' uses unregistered tool '{name}'"
                )
            tools.append(tool)

        provider = config.provider or self._config.default_provider
        return Agent(
            config,
            self._llm_client(provider),
            tools=tools,
            bus=self._bus,
            memory=MemoryStore(
                max_history_length=config.max_history_length or self._config.max_history_length,
                bus=self._bus,
                agent_id=config.agent_id,
            ),
            tool_handler=self._tool_handler,
            provider_config_hook=apply_provider_overrides(provider),
        )

    def create_agents(self, config: Mapping[str, Any]) -> dict[str, Agent]:
        """Create every agent in config["agents"] (or in a bare agent map)."""
        raw_agents = config.get("agents", config)
        if not isinstance(raw_agents, Mapping):
            raise ConfigurationError("'agents' must map agent ids to configs")
        agents = {}
        for agent_id, raw in raw_agents.items():
            agent = self.create_agent(agent_id, raw)
            agents[agent.id] = agent
        logger.info("Created %d agent(s)", len(agents))
        return agents

    # ------------------------------------------------------------------
    # Teams and agencies
    # ------------------------------------------------------------------

    def create_team(
        self,
        config: Mapping[str, Any],
        team_id: str,
        agents: Optional[Mapping[str, Agent]] = None,
    ) -> Team:
        """Create a team from config["team"][team_id].

        Agents are created from config["agents"] unless passed in.
        """
        teams = config.get("team") or config.get("teams") or {}
        if team_id not in teams:
            raise ConfigurationError(f"Team '{team_id}' not found in configuration")
        if agents is None:
            agents = self.create_agents(config)
        return Team(
            TeamConfig.from_dict(team_id, teams[team_id]),
            agents,
            bus=self._bus,
            job_schemas=config.get("jobSchemas") or config.get("job_schemas"),
        )

    def create_agency(
        self,
        config: Mapping[str, Any],
        *,
        error_handlers: Mapping[str, ErrorHandler] | None = None,
        workflow_error_handlers: Mapping[str, ErrorHandler] | None = None,
    ) -> Agency:
        """Create the agency with all its teams from one configuration record."""
        agents = self.create_agents(config)
        teams = [
            self.create_team(config, team_id, agents)
            for team_id in (config.get("team") or config.get("teams") or {})
        ]
        return Agency(
            AgencyConfig.from_dict(config),
            teams,
            bus=self._bus,
            error_handlers=error_handlers,
            workflow_error_handlers=workflow_error_handlers,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _llm_client(self, provider: str) -> LLMClientPort:
        """One client per provider, shared by the agents that use it."""
        client = self._llm_clients.get(provider)
        if client is None:
            client = self._llm_client_factory(provider)
            if client is None:
                raise ConfigurationError(f"No LLM client available for provider '{provider}'")
            self._llm_clients[provider] = client
        return client

    def _build_llm_client(self, provider: str) -> LLMClientPort:
        """Build a LangChain-backed client for a provider from settings."""
        try:
            model = self._config.model_for(provider)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        model_factory = functools.partial(
            build_llm,
            provider=provider,
            model=model,
            api_key=self._config.api_key_for(provider),
            ollama_base_url=self._config.ollama_base_url,
        )
        return LangChainLLMClient(model_factory, provider=provider)

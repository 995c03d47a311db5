"""ServiceContainer: explicit wiring of every collaborator.

Nothing in the core resolves its collaborators globally: the gateway,
repositories and executors all receive the event log and dispatcher built
here. The API keeps one container on ``app.state``; workers build their own.
"""

from dataclasses import dataclass

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from datapod.commands.gateway import CommandGateway
from datapod.core.config import Settings, get_settings
from datapod.dispatch.base import Dispatcher
from datapod.dispatch.queue import RedisDispatchQueue
from datapod.dispatch.registry import ExecutorRegistry
from datapod.events.log import EventLog
from datapod.events.log_sql import SqlEventLog
from datapod.executors import ExecutorDeps, build_executor_registry
from datapod.plugins.manager import PluginManager
from datapod.policy.validation_policy import ValidationPolicyService
from datapod.repositories.api_key import ApiKeyRepository
from datapod.repositories.entity import EntityRepository
from datapod.repositories.message import ConversationMessageRepository
from datapod.repositories.project import ProjectRepository
from datapod.repositories.proposal import ProposalRepository
from datapod.repositories.template import TemplateRepository
from datapod.repositories.workspace import WorkspaceRepository
from datapod.repositories.workspace_member import WorkspaceMemberRepository
from datapod.services.proposal_service import ProposalService


@dataclass
class ServiceContainer:
    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    event_log: EventLog
    dispatcher: Dispatcher
    registry: ExecutorRegistry
    policy: ValidationPolicyService
    gateway: CommandGateway
    deps: ExecutorDeps
    proposal_service: ProposalService
    plugins: PluginManager

    @property
    def members(self) -> WorkspaceMemberRepository:
        return self.deps.members

    @property
    def api_keys(self) -> ApiKeyRepository:
        return self.deps.api_keys

    @classmethod
    def build(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        redis: Redis | None = None,
        settings: Settings | None = None,
        dispatcher: Dispatcher | None = None,
        registry: ExecutorRegistry | None = None,
        event_log: EventLog | None = None,
        plugins: PluginManager | None = None,
    ) -> "ServiceContainer":
        """Wire the core.

        Either ``dispatcher`` or ``redis`` is required. When a dispatcher is
        passed together with the registry it delivers to, the executors are
        registered into that registry.
        """
        settings = settings or get_settings()
        registry = registry if registry is not None else ExecutorRegistry()
        if dispatcher is None:
            if redis is None:
                raise RuntimeError("ServiceContainer needs a dispatcher or a Redis client")
            dispatcher = RedisDispatchQueue(redis, registry)

        if event_log is None:
            event_log = SqlEventLog(session_factory)
        if plugins is None:
            plugins = PluginManager()

        workspaces = WorkspaceRepository(session_factory, event_log)
        members = WorkspaceMemberRepository(session_factory, event_log)
        proposals = ProposalRepository(session_factory)
        deps = ExecutorDeps(
            event_log=event_log,
            dispatcher=dispatcher,
            entities=EntityRepository(session_factory, event_log),
            projects=ProjectRepository(session_factory, event_log),
            workspaces=workspaces,
            members=members,
            api_keys=ApiKeyRepository(session_factory, event_log),
            templates=TemplateRepository(session_factory, event_log),
            messages=ConversationMessageRepository(session_factory, event_log),
            proposals=proposals,
        )

        build_executor_registry(deps, settings, registry)
        plugins.register_executors(registry, deps)

        policy = ValidationPolicyService(workspaces)
        gateway = CommandGateway(
            event_log,
            dispatcher,
            policy,
            dispatch_attempts=settings.dispatch_publish_retries,
        )

        return cls(
            settings=settings,
            session_factory=session_factory,
            event_log=event_log,
            dispatcher=dispatcher,
            registry=registry,
            policy=policy,
            gateway=gateway,
            deps=deps,
            proposal_service=ProposalService(proposals, members, gateway),
            plugins=plugins,
        )

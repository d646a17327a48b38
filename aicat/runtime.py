"""
Process-wide runtime.

AgentRuntime is built once by build_runtime() and passed by reference to the
gateway. It owns every long-lived component: configuration, the active model
selection, stores, the confirmation tracker, the dispatcher and the
orchestrator. It also implements the inbound message pipeline:

    archive -> user watchers -> custom commands -> prefix -> command router

Owner rights come from the configured owner ids plus verified dynamic owners.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from aicat.commands import CommandRouter
from aicat.config import AgentConfig
from aicat.confirmation import OperationConfirmationTracker
from aicat.context_store import ContextStore
from aicat.events import (
    extract_mentions,
    message_text,
    notification_from_notice,
    process_message_content,
    strip_prefix,
)
from aicat.failover import ActiveModel, ModelFailoverPolicy
from aicat.host import HostActionInvoker, OneBotHttpInvoker, resolve_caller_context
from aicat.messaging import OneBotReplyChannel, ReplyDeduplicator
from aicat.orchestrator import ConversationOrchestrator, FinalReply, Instruction
from aicat.owners import OwnerStore
from aicat.permissions import PermissionGate
from aicat.tools import (
    CustomCommandStore,
    CustomCommandTools,
    DiagnosticsTools,
    HostCallTools,
    MessageArchive,
    MessageQueryTools,
    ScheduledTaskStore,
    ScheduledTaskTools,
    ToolDispatcher,
    ToolRegistry,
    UserWatcherStore,
    UserWatcherTools,
    WebTools,
)
from aicat.transport import ChatTransport, CompletionTransport
from aicat.utils import RecentLogHandler, get_logger, get_recent_log_handler

logger = get_logger("AICat.Runtime")


@dataclass
class AgentRuntime:
    config: AgentConfig
    invoker: HostActionInvoker
    transport: CompletionTransport
    active_model: ActiveModel
    failover: ModelFailoverPolicy
    context_store: ContextStore
    tracker: OperationConfirmationTracker
    gate: PermissionGate
    registry: ToolRegistry
    dispatcher: ToolDispatcher
    orchestrator: ConversationOrchestrator
    router: CommandRouter
    host_tools: HostCallTools
    custom_commands: CustomCommandStore
    scheduled_tasks: ScheduledTaskStore
    watchers: UserWatcherStore
    owners: OwnerStore
    watcher_tools: UserWatcherTools
    archive: MessageArchive
    dedup: ReplyDeduplicator

    def reply_channel(self, event: Dict[str, Any]) -> OneBotReplyChannel:
        message_type = event.get("message_type") or ("group" if event.get("group_id") else "private")
        return OneBotReplyChannel(
            self.invoker,
            message_type=message_type,
            user_id=event.get("user_id"),
            group_id=event.get("group_id") if message_type == "group" else None,
            bot_name=self.config.bot_name,
            self_id=event.get("self_id"),
            dedup=self.dedup,
            long_threshold=self.config.long_message_threshold,
            chunk_size=self.config.forward_chunk_size,
        )

    async def handle_message(self, event: Dict[str, Any]) -> Optional[FinalReply]:
        """Run the inbound pipeline for one OneBot message event."""
        user_id = str(event.get("user_id") or "")
        if not user_id:
            return None
        message_type = event.get("message_type")
        group_id = str(event["group_id"]) if message_type == "group" and event.get("group_id") else None
        sender = event.get("sender") or {}
        nickname = sender.get("card") or sender.get("nickname") or ""
        raw = message_text(event)

        self.archive.record(
            event.get("message_id") or "",
            user_id,
            raw,
            group_id=group_id,
            nickname=nickname,
            timestamp=event.get("time"),
        )

        # The bot's own messages are archived but never acted on
        if event.get("self_id") is not None and str(event.get("self_id")) == user_id:
            return None

        await self.watcher_tools.check_and_execute(user_id, group_id, raw, event.get("message_id"))

        channel = self.reply_channel(event)
        content, quoted_id = process_message_content(raw)

        reply = await self.custom_commands.match_and_execute(content, user_id, group_id, nickname)
        if reply is not None:
            await channel.send(reply)
            return None

        if not self.config.enable_reply:
            return None

        command = strip_prefix(content, self.config.prefix)
        if command is None:
            return None

        caller = await resolve_caller_context(
            self.invoker,
            user_id,
            group_id,
            owner_ids=self.owners.owner_ids,
            nickname=nickname,
            sender_role=sender.get("role") if group_id else None,
        )
        instruction = Instruction(
            text=command,
            nickname=nickname,
            mentioned_user_ids=[m for m in extract_mentions(event.get("message")) if m != str(event.get("self_id"))],
            quoted_message_id=quoted_id,
        )
        return await self.router.route(instruction, caller, channel)

    def handle_notice(self, event: Dict[str, Any]) -> bool:
        """Feed a OneBot notice to the confirmation tracker. True if it resolved a pending operation."""
        notification = notification_from_notice(event)
        if notification is None:
            return False
        return self.tracker.notify(notification)


def build_runtime(
    config: AgentConfig,
    invoker: Optional[HostActionInvoker] = None,
    transport: Optional[CompletionTransport] = None,
    ring: Optional[RecentLogHandler] = None,
) -> AgentRuntime:
    """Wire every component from configuration. Collaborators may be injected."""
    invoker = invoker or OneBotHttpInvoker(
        config.onebot_url, config.onebot_token, timeout=config.host_timeout_seconds
    )
    transport = transport or ChatTransport(
        config.api_url, config.api_key, timeout=config.request_timeout_seconds
    )
    if ring is None:
        ring = get_recent_log_handler()

    models = config.model_list
    if config.default_model and config.default_model not in models:
        models = [config.default_model, *models]
    failover = ModelFailoverPolicy(models)
    active_model = ActiveModel(config.default_model or failover.models[0])

    context_store = ContextStore(
        max_turns=config.context_max_turns,
        expire_seconds=config.context_expire_seconds,
        cleanup_interval=config.context_cleanup_interval_seconds,
    )
    tracker = OperationConfirmationTracker(
        early_event_seconds=config.early_event_seconds,
        late_notice_seconds=config.late_notice_seconds,
    )
    gate = PermissionGate()

    host_tools = HostCallTools(invoker, tracker, confirmation_timeout=config.confirmation_timeout_seconds)
    custom_commands = CustomCommandStore(config.data_dir, http_timeout=config.web_timeout_seconds)
    scheduled_tasks = ScheduledTaskStore(config.data_dir)
    watchers = UserWatcherStore(config.data_dir)
    owners = OwnerStore(config.data_dir, config.owner_ids, code_ttl_seconds=config.owner_code_ttl_seconds)
    watcher_tools = UserWatcherTools(watchers, host_tools)
    archive = MessageArchive(config.archive_max_messages, config.archive_retention_days)

    registry = ToolRegistry([
        host_tools,
        WebTools(timeout=config.web_timeout_seconds),
        CustomCommandTools(custom_commands),
        ScheduledTaskTools(scheduled_tasks, host_tools),
        watcher_tools,
        MessageQueryTools(archive),
        DiagnosticsTools(ring),
    ])
    dispatcher = ToolDispatcher(registry, gate)

    orchestrator = ConversationOrchestrator(
        transport,
        dispatcher,
        context_store,
        failover,
        active_model,
        bot_name=config.bot_name,
        max_rounds=config.max_rounds,
        max_retries=config.max_retries,
        acknowledgement=config.confirm_message if config.send_confirmation else None,
    )
    router = CommandRouter(
        orchestrator,
        context_store,
        active_model,
        failover.models,
        watchers,
        owners=owners,
        prefix=config.prefix,
        bot_name=config.bot_name,
    )

    logger.info(f"Runtime ready: {len(registry.names)} tools, model {active_model.name}")
    return AgentRuntime(
        config=config,
        invoker=invoker,
        transport=transport,
        active_model=active_model,
        failover=failover,
        context_store=context_store,
        tracker=tracker,
        gate=gate,
        registry=registry,
        dispatcher=dispatcher,
        orchestrator=orchestrator,
        router=router,
        host_tools=host_tools,
        custom_commands=custom_commands,
        scheduled_tasks=scheduled_tasks,
        watchers=watchers,
        owners=owners,
        watcher_tools=watcher_tools,
        archive=archive,
        dedup=ReplyDeduplicator(config.dedup_window_seconds),
    )

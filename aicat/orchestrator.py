"""
Conversation orchestrator.

Drives one instruction through a bounded tool-calling loop:

    system prompt + prior context + synthesized user message
        -> completion (with model failover on retryable errors)
        -> either a final answer, or tool calls dispatched in order
        -> repeat until an answer or the round budget runs out

At most one acknowledgement and one final message are sent per run. Only a
transport failure after the retry budget, or a response without an
assistant message, ends a run early.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from aicat.context_store import ContextStore, ConversationKey
from aicat.errors import ModelResponseError, TransportError
from aicat.failover import ActiveModel, ModelFailoverPolicy, ModelFailoverState
from aicat.messaging import BufferedReplyChannel, ReplyChannel
from aicat.models import ChatMessage, ChatResponse, ToolResult
from aicat.permissions import CallerContext
from aicat.tools.dispatcher import ToolDispatcher
from aicat.transport import CompletionTransport
from aicat.utils import get_logger

logger = get_logger("AICat.Orchestrator")

ERROR_DETAIL_LIMIT = 200


class ReplyKind(str, Enum):
    ANSWER = "answer"
    SUMMARY = "summary"
    ROUND_LIMIT = "round_limit"
    ERROR = "error"
    EMPTY = "empty"


@dataclass
class Instruction:
    """What the caller asked for, after prefix and CQ-code stripping."""
    text: str
    nickname: str = ""
    mentioned_user_ids: List[str] = field(default_factory=list)
    quoted_message_id: Optional[str] = None


@dataclass
class ToolRecord:
    call_id: str
    name: str
    arguments: Dict[str, Any]
    result: ToolResult


@dataclass
class FinalReply:
    """Outcome of a run. ``text`` is what was sent as the final message."""
    kind: ReplyKind
    text: str = ""
    rounds: int = 0
    tool_records: List[ToolRecord] = field(default_factory=list)
    argument_parse_failures: int = 0

    @property
    def succeeded_count(self) -> int:
        return sum(1 for r in self.tool_records if r.result.success)


def parse_arguments(raw: Optional[str]) -> Tuple[Dict[str, Any], bool]:
    """Decode tool-call arguments. Returns ({}, False) for anything but a JSON object."""
    if raw is None or not raw.strip():
        return {}, True
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return {}, False
    if not isinstance(value, dict):
        return {}, False
    return value, True


def generate_system_prompt(bot_name: str = "Xiyu") -> str:
    return f"""You are {bot_name}, a cute catgirl assistant living in a OneBot chat, nya~ You are playful and lively and end sentences with "nya".

[How to act] Use the call_api tool with `action` (the OneBot action name) and `params` (an object of parameters).

[Common actions]
Messages: send_group_msg / send_private_msg / delete_msg / get_msg
Lookups: get_login_info / get_friend_list / get_group_list / get_group_member_info
Group admin: set_group_card / set_group_ban / set_group_kick / set_essence_msg

[Forwarded messages] Use send_group_forward_msg / send_private_forward_msg
Format: params: {{ group_id or user_id, messages: [...] }}
messages is a list of nodes: {{"type":"node","data":{{"user_id":123456,"nickname":"Name","content":[segments]}}}}
Segments: {{"type":"text","data":{{"text":"..."}}}} or {{"type":"image","data":{{"file":"url"}}}}
Nest forwards by putting nodes inside content.

[Message history] Every group and direct message is recorded and can be queried:
- query_history_messages: recent messages, filters group_id / user_id / keyword / limit / hours_ago
- search_messages: regex search over message content
- get_message_stats: totals, today's count, active users
- get_message_by_id: one message by id
To summarize a chat, fetch recent messages with query_history_messages first, then summarize.

[Other tools] web_search / fetch_url / custom commands / scheduled tasks / user watchers

[Rules] Always use the current group id and never act on another group. Keep replies short and cute, nya~"""


def describe_permissions(caller: CallerContext) -> str:
    labels = []
    if caller.is_privileged_owner:
        labels.append("bot owner")
    if caller.role in ("owner", "admin") and not caller.is_direct:
        labels.append(f"group {caller.role}")
    elif caller.is_admin:
        labels.append("admin")
    if not labels:
        labels.append("member (no admin rights)")
    return ", ".join(labels)


def build_user_message(instruction: Instruction, caller: CallerContext) -> str:
    scope = f"group {caller.scope_id}" if caller.scope_id else "direct chat"
    nickname = instruction.nickname or caller.nickname
    text = f"Scope: {scope} | Caller: {caller.caller_id} ({nickname}) | Permissions: {describe_permissions(caller)}"
    if instruction.mentioned_user_ids:
        text += f"\n- Mentioned users: {', '.join(instruction.mentioned_user_ids)}"
    if instruction.quoted_message_id:
        text += f"\n- Quoted message id: {instruction.quoted_message_id}"
    return f"{text}\nInstruction: {instruction.text}"


class ConversationOrchestrator:
    """
    Runs instructions against the chat transport and the tool dispatcher.

    Args:
        transport: Completion client raising TransportError on failure.
        dispatcher: Permission-gated tool dispatcher.
        context_store: Per-conversation history.
        failover: Model failover policy over the configured model list.
        active_model: Process-wide model selection; updated after a
            successful failover.
        bot_name: Persona name used in the system prompt.
        max_rounds: Hard cap on completion rounds per run.
        max_retries: Failover budget per run.
        acknowledgement: Sent once at the start of a run when non-empty.
    """

    def __init__(
        self,
        transport: CompletionTransport,
        dispatcher: ToolDispatcher,
        context_store: ContextStore,
        failover: ModelFailoverPolicy,
        active_model: ActiveModel,
        bot_name: str = "Xiyu",
        max_rounds: int = 10,
        max_retries: int = 2,
        acknowledgement: Optional[str] = None,
    ):
        self.transport = transport
        self.dispatcher = dispatcher
        self.context_store = context_store
        self.failover = failover
        self.active_model = active_model
        self.bot_name = bot_name
        self.max_rounds = max_rounds
        self.max_retries = max_retries
        self.acknowledgement = acknowledgement

    def initial_messages(self, instruction: Instruction, caller: CallerContext) -> List[ChatMessage]:
        messages = [ChatMessage(role="system", content=generate_system_prompt(self.bot_name))]
        key = ConversationKey.of(caller.caller_id, caller.scope_id)
        for entry in self.context_store.get_context(key):
            messages.append(ChatMessage(role=entry["role"], content=entry["content"]))
        messages.append(ChatMessage(role="user", content=build_user_message(instruction, caller)))
        return messages

    async def run(
        self,
        instruction: Instruction,
        caller: CallerContext,
        channel: Optional[ReplyChannel] = None,
    ) -> FinalReply:
        channel = channel or BufferedReplyChannel()
        key = ConversationKey.of(caller.caller_id, caller.scope_id)
        messages = self.initial_messages(instruction, caller)
        tools = self.dispatcher.registry.wire_schemas()
        state = self.failover.start(self.active_model.name, self.max_retries)
        records: List[ToolRecord] = []
        parse_failures = 0

        if self.acknowledgement:
            await channel.send(self.acknowledgement)

        for round_index in range(1, self.max_rounds + 1):
            logger.debug(f"[{key}] round {round_index} on {state.current_model}")

            try:
                response = await self._complete(state, messages, tools)
                message = self._assistant_message(response)
            except TransportError as exc:
                text = f"Request failed: {exc.message}\n{(exc.detail or '')[:ERROR_DETAIL_LIMIT]}".rstrip()
                logger.error(f"[{key}] transport failed ({exc.kind.value}): {exc.message}")
                await channel.send(text)
                return FinalReply(ReplyKind.ERROR, text, round_index, records, parse_failures)
            except ModelResponseError as exc:
                text = f"Request failed: {exc}"
                logger.error(f"[{key}] {exc}")
                await channel.send(text)
                return FinalReply(ReplyKind.ERROR, text, round_index, records, parse_failures)

            tool_calls = message.tool_calls or []
            if not tool_calls:
                content = message.content or ""
                if content.strip():
                    await channel.send_long(content)
                    self.context_store.add_turn(key, instruction.text, content)
                    return FinalReply(ReplyKind.ANSWER, content, round_index, records, parse_failures)
                if records:
                    succeeded = sum(1 for r in records if r.result.success)
                    text = f"Completed {len(records)} operation(s), {succeeded} succeeded"
                    await channel.send(text)
                    return FinalReply(ReplyKind.SUMMARY, text, round_index, records, parse_failures)
                logger.debug(f"[{key}] empty reply with no tool calls")
                return FinalReply(ReplyKind.EMPTY, "", round_index, records, parse_failures)

            messages.append(ChatMessage(role="assistant", content=message.content or "", tool_calls=tool_calls))
            for call in tool_calls:
                args, parsed = parse_arguments(call.raw_arguments)
                if not parsed:
                    parse_failures += 1
                    logger.warning(f"[{key}] unparseable arguments for {call.name}: {call.raw_arguments[:200]}")

                result = await self.dispatcher.dispatch(call.name, args, caller)
                records.append(ToolRecord(call.id, call.name, args, result))
                messages.append(ChatMessage(role="tool", content=result.to_content(), tool_call_id=call.id))

        text = f"Reached the round limit; {len(records)} operation(s) executed"
        logger.warning(f"[{key}] {text}")
        await channel.send(text)
        return FinalReply(ReplyKind.ROUND_LIMIT, text, self.max_rounds, records, parse_failures)

    async def _complete(
        self,
        state: ModelFailoverState,
        messages: List[ChatMessage],
        tools: List[Dict[str, Any]],
    ) -> ChatResponse:
        """One completion, advancing through the failover list while the budget lasts."""
        while True:
            try:
                response = await self.transport.complete(state.current_model, messages, tools)
            except TransportError as exc:
                if not (self.failover.is_retryable(exc) and state.can_retry):
                    raise
                failed = state.current_model
                state.advance(self.failover)
                logger.warning(
                    f"Model {failed} failed ({exc.kind.value}), retrying with {state.current_model} "
                    f"({state.attempt_count}/{state.max_retries})"
                )
                continue

            if state.attempt_count and state.current_model != self.active_model.name:
                logger.info(f"Active model switched to {state.current_model}")
                self.active_model.set(state.current_model)
            return response

    @staticmethod
    def _assistant_message(response: ChatResponse) -> ChatMessage:
        if not response.choices or response.choices[0].message is None:
            raise ModelResponseError("The model returned no message")
        return response.choices[0].message

"""
Caller-facing command routing.

Handles the built-in commands that follow the prefix (help, context
inspection, model selection, watcher listing, owner management) and hands
everything else to the orchestrator. Owner-only commands from anyone else
are treated as plain instructions.
"""

import re
from typing import List, Optional

from aicat import __version__
from aicat.context_store import ContextStore, ConversationKey
from aicat.failover import ActiveModel
from aicat.messaging import ReplyChannel
from aicat.orchestrator import ConversationOrchestrator, FinalReply, Instruction
from aicat.owners import OwnerStore
from aicat.permissions import CallerContext
from aicat.tools.user_watchers import UserWatcherStore
from aicat.utils import get_logger

logger = get_logger("AICat.Commands")

_SWITCH_MODEL = re.compile(r"^switch model\s*(\d+)?$", re.IGNORECASE)
_VERIFY_OWNER = re.compile(r"^verify owner\s+(\S+)$", re.IGNORECASE)
_REMOVE_OWNER = re.compile(r"^remove owner\s+(\d+)$", re.IGNORECASE)


class CommandRouter:
    def __init__(
        self,
        orchestrator: ConversationOrchestrator,
        context_store: ContextStore,
        active_model: ActiveModel,
        models: List[str],
        watchers: UserWatcherStore,
        owners: Optional[OwnerStore] = None,
        prefix: str = "xy",
        bot_name: str = "Xiyu",
    ):
        self.orchestrator = orchestrator
        self.context_store = context_store
        self.active_model = active_model
        self.models = list(models)
        self.watchers = watchers
        self.owners = owners
        self.prefix = prefix
        self.bot_name = bot_name

    async def route(
        self,
        instruction: Instruction,
        caller: CallerContext,
        channel: ReplyChannel,
    ) -> Optional[FinalReply]:
        """Handle a built-in command, or run the orchestrator. Returns the run's reply, if any."""
        command = instruction.text.strip()
        lowered = command.lower()
        owner = caller.is_privileged_owner
        key = ConversationKey.of(caller.caller_id, caller.scope_id)

        if lowered in ("", "help"):
            await channel.send(self.help_text(owner))
            return None

        if lowered == "clear context":
            self.context_store.clear(key)
            await channel.send("Context cleared, nya~")
            return None

        if lowered == "context":
            info = self.context_store.info(key)
            if info.expired or info.messages == 0:
                await channel.send("No active context right now, nya~")
            else:
                await channel.send(f"Turns: {info.turns} | Messages: {info.messages}")
            return None

        if owner and lowered == "models":
            await channel.send(self.models_text())
            return None

        switch = _SWITCH_MODEL.match(command)
        if owner and switch:
            await channel.send(self.switch_model(switch.group(1)))
            return None

        if owner and lowered == "watchers":
            await channel.send(self.watchers_text())
            return None

        if self.owners is not None:
            reply = self.owner_command(command, caller)
            if reply is not None:
                await channel.send(reply)
                return None

        logger.info(f"Instruction from {caller.caller_id} in {caller.scope_id or 'direct'}: {command[:80]}")
        return await self.orchestrator.run(instruction, caller, channel)

    def help_text(self, owner: bool) -> str:
        p = self.prefix
        lines = [
            f"{self.bot_name} catgirl assistant v{__version__}",
            "[Basics]",
            f"{p} <text> - talk to the assistant",
            f"{p} help - show this help",
            f"{p} context - show conversation state",
            f"{p} clear context - forget this conversation",
        ]
        if self.owners is not None:
            lines += [f"{p} set owner - request owner rights", f"{p} verify owner <code> - confirm the request"]
        if owner:
            lines += [
                "",
                "[Owner]",
                f"{p} models - list available models",
                f"{p} switch model <n> - switch the active model",
                f"{p} watchers - list user watchers",
                f"{p} owners - list owners",
                f"{p} remove owner <id> - remove a dynamic owner",
            ]
        lines += ["", f"Prefix: {p} | Model: {self.active_model.name}"]
        return "\n".join(lines)

    def models_text(self) -> str:
        lines = ["Available models:"]
        for index, model in enumerate(self.models, start=1):
            mark = " <- current" if model == self.active_model.name else ""
            lines.append(f"{index}. {model}{mark}")
        lines.append(f"Use '{self.prefix} switch model <n>' to switch, nya~")
        return "\n".join(lines)

    def switch_model(self, index: Optional[str]) -> str:
        if not index:
            return self.models_text()
        position = int(index)
        if not 1 <= position <= len(self.models):
            return f"Invalid number, pick 1-{len(self.models)}"
        self.active_model.set(self.models[position - 1])
        logger.info(f"Model switched to {self.active_model.name}")
        return f"Model switched to {self.active_model.name}, nya~"

    def watchers_text(self) -> str:
        rows = self.watchers.list().data or []
        if not rows:
            return "No user watchers yet, nya~"
        lines = [f"User watchers ({len(rows)}):"]
        for row in rows:
            status = "on" if row["enabled"] else "off"
            lines.append(
                f"[{status}] {row['id']}: watches {row['target_user']} -> {row['action']} "
                f"(triggered {row['trigger_count']}x)"
            )
        return "\n".join(lines)

    def owner_command(self, command: str, caller: CallerContext) -> Optional[str]:
        """Owner management. None when the command is not one of these (or not allowed)."""
        lowered = command.lower()
        if lowered == "set owner":
            return self.owners.request_verification(caller.caller_id).summary

        verify = _VERIFY_OWNER.match(command)
        if verify:
            return self.owners.verify(caller.caller_id, verify.group(1)).summary

        if not caller.is_privileged_owner:
            return None

        if lowered == "owners":
            return self.owners_text()

        remove = _REMOVE_OWNER.match(command)
        if remove:
            return self.owners.remove(caller.caller_id, remove.group(1)).summary
        return None

    def owners_text(self) -> str:
        owners = self.owners.list()
        lines = [f"Owners ({owners.count}):", "[Initial]"]
        lines += [f"  - {uid}" for uid in owners.data["default"]]
        if owners.data["dynamic"]:
            lines.append("[Added]")
            lines += [f"  - {uid}" for uid in owners.data["dynamic"]]
        return "\n".join(lines)

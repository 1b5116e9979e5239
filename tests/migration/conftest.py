from __future__ import annotations

import asyncio
import itertools
from collections import deque
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Optional

import pytest

from modules.migration.config_store import ConfigStore, GuildConfig
from modules.migration.ledger import LedgerClient
from shared.sheets import ledger as sheet_ledger

OWNER_ID = 1
GUILD_ID = 100
VOTE_CHANNEL_ID = 201
WELCOME_CHANNEL_ID = 202
TICKET_CATEGORY_ID = 301
APPROVED_CATEGORY_ID = 302
REJECTED_CATEGORY_ID = 303
OFFICER_ROLE_ID = 401
SHEET_ID = "sheet-abc"

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

_message_ids = itertools.count(9000)


class FakeReaction:
    def __init__(self, emoji: str, count: int = 1, me: bool = True) -> None:
        self.emoji = emoji
        self.count = count
        self.me = me


class FakeMessage:
    def __init__(self, content: str, *, channel=None, author=None) -> None:
        self.id = next(_message_ids)
        self.content = content
        self.channel = channel
        self.author = author
        self.reactions: list[FakeReaction] = []
        self.edits: list[str] = []
        self.fail_edit = False

    async def add_reaction(self, emoji: str) -> None:
        for reaction in self.reactions:
            if reaction.emoji == emoji:
                reaction.count += 1
                return
        self.reactions.append(FakeReaction(emoji))

    async def edit(self, *, content: str) -> None:
        if self.fail_edit:
            raise RuntimeError("edit failed")
        self.content = content
        self.edits.append(content)


class FakeTextChannel:
    def __init__(
        self,
        channel_id: int,
        *,
        name: str = "general",
        guild: "FakeGuild | None" = None,
        category_id: Optional[int] = None,
    ) -> None:
        self.id = channel_id
        self.name = name
        self.guild = guild
        self.category_id = category_id
        self.sent: list[str] = []
        self.messages: dict[int, FakeMessage] = {}
        self.edit_calls: list[dict] = []
        self.fail_send = False
        self.fail_send_for: set[str] = set()
        self.fail_edit = False
        self.can_send = True
        self.journal: Optional[list[str]] = None

    async def send(self, content: str) -> FakeMessage:
        if self.fail_send or content in self.fail_send_for:
            raise RuntimeError("send failed")
        if self.journal is not None:
            self.journal.append(f"send #{self.name}: {content}")
        message = FakeMessage(content, channel=self)
        self.sent.append(content)
        self.messages[message.id] = message
        return message

    async def fetch_message(self, message_id: int) -> FakeMessage:
        try:
            return self.messages[message_id]
        except KeyError:
            raise LookupError(message_id) from None

    async def edit(self, *, category=None, reason=None) -> None:
        if self.fail_edit:
            raise RuntimeError("move failed")
        self.edit_calls.append({"category": category, "reason": reason})
        self.category_id = getattr(category, "id", None)

    def permissions_for(self, _member):
        return SimpleNamespace(view_channel=self.can_send, send_messages=self.can_send)


class FakeCategory:
    def __init__(self, category_id: int) -> None:
        self.id = category_id


class FakeGuild:
    def __init__(self, guild_id: int = GUILD_ID, name: str = "Kingdom") -> None:
        self.id = guild_id
        self.name = name
        self.me = SimpleNamespace(id=999)
        self._channels: dict[int, Any] = {}

    def add(self, channel):
        self._channels[channel.id] = channel
        if isinstance(channel, FakeTextChannel):
            channel.guild = self
        return channel

    @property
    def text_channels(self) -> list[FakeTextChannel]:
        return [ch for ch in self._channels.values() if isinstance(ch, FakeTextChannel)]

    def get_channel(self, channel_id: int):
        return self._channels.get(channel_id)

    async def fetch_channel(self, channel_id: int):
        channel = self._channels.get(channel_id)
        if channel is None:
            raise LookupError(channel_id)
        return channel


class FakeBot:
    """Bot stand-in with a scripted ``wait_for`` queue."""

    def __init__(self) -> None:
        self._channels: dict[int, Any] = {}
        self._guilds: dict[int, FakeGuild] = {}
        self.incoming: deque = deque()
        self.wait_calls: list[dict] = []

    def add_guild(self, guild: FakeGuild) -> FakeGuild:
        self._guilds[guild.id] = guild
        for channel in guild._channels.values():
            self._channels[channel.id] = channel
        return guild

    def get_guild(self, guild_id: int):
        return self._guilds.get(guild_id)

    def get_channel(self, channel_id: int):
        return self._channels.get(channel_id)

    async def fetch_channel(self, channel_id: int):
        channel = self._channels.get(channel_id)
        if channel is None:
            raise LookupError(channel_id)
        return channel

    async def wait_until_ready(self) -> None:
        return None

    def queue(self, *messages) -> None:
        self.incoming.extend(messages)

    async def wait_for(self, event: str, *, check=None, timeout=None):
        self.wait_calls.append({"event": event, "timeout": timeout})
        while self.incoming:
            item = self.incoming.popleft()
            if isinstance(item, BaseException):
                raise item
            if check is None or check(item):
                return item
        raise asyncio.TimeoutError()


class FakeWorksheet:
    """In-memory ledger tab understanding the gspread calls the ledger makes."""

    def __init__(self) -> None:
        self.rows: list[list[str]] = []
        self.append_calls: list[dict] = []
        self.update_calls: list[dict] = []
        self.fail_updates_for: set[str] = set()
        self.fail_reads = False
        self.journal: Optional[list[str]] = None

    @staticmethod
    def _split(label: str) -> tuple[int, int]:
        column = ord(label[0]) - ord("A")
        return int(label[1:]), column

    def col_values(self, index: int) -> list[str]:
        if self.fail_reads:
            raise RuntimeError("sheets down")
        return [row[index - 1] if len(row) >= index else "" for row in self.rows]

    def append_row(self, values, value_input_option=None, table_range=None):
        self.append_calls.append(
            {"values": list(values), "option": value_input_option, "table_range": table_range}
        )
        self.rows.append([str(v) for v in values])

    def update(self, range_name=None, values=None, value_input_option=None):
        if range_name[0] in self.fail_updates_for:
            raise RuntimeError(f"write to {range_name} failed")
        if self.journal is not None:
            self.journal.append(f"write {range_name}: {values[0][0]}")
        self.update_calls.append({"range": range_name, "option": value_input_option})
        row, column = self._split(range_name)
        while len(self.rows) < row:
            self.rows.append([""] * 9)
        target = self.rows[row - 1]
        while len(target) <= column:
            target.append("")
        target[column] = values[0][0]

    def acell(self, label: str):
        row, column = self._split(label)
        try:
            value = self.rows[row - 1][column]
        except IndexError:
            value = None
        return SimpleNamespace(value=value)

    def cell(self, row: int, column: str) -> str:
        return self.rows[row - 1][ord(column) - ord("A")]


async def inline_runner(func, *args, timeout=None):
    return func(*args)


def make_member(user_id: int, *, roles=(), name: str = "member", guild=None):
    return SimpleNamespace(
        id=user_id,
        name=name,
        mention=f"<@{user_id}>",
        roles=[SimpleNamespace(id=role) for role in roles],
        guild=guild,
    )


def make_config(**overrides) -> GuildConfig:
    values = dict(
        vote_channel_id=VOTE_CHANNEL_ID,
        welcome_channel_id=WELCOME_CHANNEL_ID,
        ticket_category_id=TICKET_CATEGORY_ID,
        approved_category_id=APPROVED_CATEGORY_ID,
        rejected_category_id=REJECTED_CATEGORY_ID,
        approve_role_id=OFFICER_ROLE_ID,
        sheet_id=SHEET_ID,
        expires_at=NOW + timedelta(days=20),
    )
    values.update(overrides)
    return GuildConfig(**values)


@pytest.fixture
def fake_env():
    return SimpleNamespace(
        Bot=FakeBot,
        Guild=FakeGuild,
        TextChannel=FakeTextChannel,
        Category=FakeCategory,
        Message=FakeMessage,
        Reaction=FakeReaction,
        member=make_member,
        config=make_config,
        NOW=NOW,
        OWNER_ID=OWNER_ID,
        GUILD_ID=GUILD_ID,
        VOTE_CHANNEL_ID=VOTE_CHANNEL_ID,
        WELCOME_CHANNEL_ID=WELCOME_CHANNEL_ID,
        TICKET_CATEGORY_ID=TICKET_CATEGORY_ID,
        APPROVED_CATEGORY_ID=APPROVED_CATEGORY_ID,
        REJECTED_CATEGORY_ID=REJECTED_CATEGORY_ID,
        OFFICER_ROLE_ID=OFFICER_ROLE_ID,
        SHEET_ID=SHEET_ID,
    )


@pytest.fixture
def worksheet(monkeypatch) -> FakeWorksheet:
    sheet = FakeWorksheet()
    monkeypatch.setattr(sheet_ledger, "_worksheet", lambda _sheet_id: sheet)
    return sheet


@pytest.fixture
def ledger(worksheet) -> LedgerClient:
    return LedgerClient(runner=inline_runner)


@pytest.fixture
def store(config_path) -> ConfigStore:
    return ConfigStore(config_path)


@pytest.fixture
def kingdom():
    """A provisioned guild: vote, welcome and one ticket channel."""

    bot = FakeBot()
    guild = FakeGuild()
    vote = guild.add(FakeTextChannel(VOTE_CHANNEL_ID, name="votes"))
    welcome = guild.add(FakeTextChannel(WELCOME_CHANNEL_ID, name="welcome"))
    ticket = guild.add(
        FakeTextChannel(555, name="ticket-42", category_id=TICKET_CATEGORY_ID)
    )
    for category_id in (TICKET_CATEGORY_ID, APPROVED_CATEGORY_ID, REJECTED_CATEGORY_ID):
        guild.add(FakeCategory(category_id))
    bot.add_guild(guild)
    return SimpleNamespace(bot=bot, guild=guild, vote=vote, welcome=welcome, ticket=ticket)


@pytest.fixture
def journal(kingdom, worksheet) -> list[str]:
    """One ordered log of vote posts, ticket posts and ledger writes."""

    events: list[str] = []
    for target in (kingdom.vote, kingdom.ticket, worksheet):
        target.journal = events
    return events

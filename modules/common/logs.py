import logging


_pylog = logging.getLogger("migration")

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def _fmt_fields(fields: dict) -> str:
    return " • ".join(f"{k}={v}" for k, v in fields.items() if v not in (None, "", "-"))


class _Log:
    """Operator-facing one-liners on the ``migration`` logger."""

    def human(self, level: str, message: str, **fields):
        _pylog.log(_LEVELS.get(level.lower(), logging.INFO), message, extra=fields)

    def event(self, level: str, emoji: str, event: str, **fields) -> str:
        """Emit ``"<emoji> <event> — k=v • k=v"`` and return the rendered line."""

        detail = _fmt_fields(fields)
        line = f"{emoji} {event} — {detail}" if detail else f"{emoji} {event}"
        self.human(level, line)
        return line


log = _Log()


def _guild_tag(guild) -> str:
    return str(getattr(guild, "name", None) or getattr(guild, "id", None) or "?")


def guild_label(guild) -> str:
    name, gid = getattr(guild, "name", None), getattr(guild, "id", None)
    return f"{name}({gid})" if name and gid else _guild_tag(guild)


def channel_label(guild, channel_id) -> str:
    return f"#{_guild_tag(guild)}:{channel_id}"


def user_label(guild, user_id) -> str:
    return f"{_guild_tag(guild)}:{user_id}"

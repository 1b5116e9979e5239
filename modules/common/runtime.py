"""Process runtime: the bot, its health endpoints and background jobs."""

from __future__ import annotations

import asyncio
import logging
import math
import os
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

from aiohttp import web
from discord.ext import commands

from modules.common.logs import log as human_log
from shared.config import get_bot_name, get_env_name, get_log_channel_id, get_port
from shared.logging import get_trace_id, set_trace_id, setup_logging

log = logging.getLogger("migration.runtime")

EXTENSIONS = ("cogs.migration",)
LOG_MESSAGE_LIMIT = 1800

RUNTIME_KEY: web.AppKey["Runtime | None"] = web.AppKey("runtime")
ACCESS_LOG_KEY: web.AppKey[logging.Logger] = web.AppKey("access_log")

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _version() -> str:
    return os.getenv("BOT_VERSION", "dev")


def _identity() -> dict[str, Any]:
    return {"bot": get_bot_name(), "env": get_env_name(), "version": _version()}


@web.middleware
async def _trace_requests(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Tag each request with a trace id and write one access record for it."""

    trace = set_trace_id()
    started = time.perf_counter()
    status = 500
    try:
        response = await handler(request)
        status = response.status
        response.headers["X-Trace-Id"] = trace
        return response
    finally:
        request.app[ACCESS_LOG_KEY].info(
            "http_request",
            extra={
                "trace": trace,
                "method": request.method,
                "path": request.path,
                "status": status,
                "ms": int((time.perf_counter() - started) * 1000),
            },
        )


async def _index(_: web.Request) -> web.Response:
    return web.json_response({"ok": True, **_identity(), "trace": get_trace_id()})


async def _health(request: web.Request) -> web.Response:
    runtime = request.app[RUNTIME_KEY]
    if runtime is None:
        payload, healthy = {"ok": True, **_identity()}, True
    else:
        payload, healthy = runtime.health_payload()
    payload["endpoint"] = request.path.strip("/")
    return web.json_response(payload, status=200 if healthy else 503)


async def create_app(*, runtime: "Runtime | None" = None) -> web.Application:
    """Build the liveness app; ``runtime`` is optional so the app can be served standalone."""

    identity = {"env": get_env_name(), "bot": get_bot_name()}
    app = web.Application(middlewares=[_trace_requests])
    app[RUNTIME_KEY] = runtime
    app[ACCESS_LOG_KEY] = setup_logging(
        static_fields=identity,
        access_logger_name="aiohttp.access",
        access_static_fields=identity,
    )
    app.router.add_get("/", _index)
    for path in ("/health", "/healthz"):
        app.router.add_get(path, _health)
    return app


def _clip(message: str, limit: int = LOG_MESSAGE_LIMIT) -> str:
    text = message.strip()
    return text if len(text) <= limit else text[: limit - 1] + "…"


class _RecurringJob:
    """A coroutine re-run on UTC boundaries of a fixed interval."""

    def __init__(
        self,
        scheduler: "Scheduler",
        *,
        interval: timedelta,
        tag: str | None = None,
        name: str | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._interval = interval
        self.tag = tag
        self.name = name
        self.next_run: datetime | None = None

    @property
    def interval(self) -> timedelta:
        return self._interval

    def _compute_next_run(self, reference: datetime | None = None) -> datetime:
        now = reference or datetime.now(timezone.utc)
        step = max(1.0, self._interval.total_seconds())
        boundary = (math.floor(now.timestamp() / step) + 1) * step
        return max(
            datetime.fromtimestamp(boundary, tz=timezone.utc),
            now + timedelta(seconds=1),
        )

    async def _loop(self, job: Callable[[], Awaitable[None]], label: str) -> None:
        while True:
            due = self.next_run or self._compute_next_run()
            self.next_run = due
            # short naps so wall-clock jumps are picked up
            while (remaining := (due - datetime.now(timezone.utc)).total_seconds()) > 0:
                await asyncio.sleep(min(remaining, 60.0))
            try:
                await job()
            except asyncio.CancelledError:
                raise
            except Exception:
                log.exception("recurring job error", extra={"job_name": label, "tag": self.tag})
            self.next_run = self._compute_next_run()

    def do(self, job: Callable[[], Awaitable[None]]) -> asyncio.Task:
        label = self.name or getattr(job, "__name__", "recurring_job")
        self.next_run = self._compute_next_run()
        return self._scheduler.spawn(self._loop(job, label), name=label)


class Scheduler:
    """Owns the background tasks so shutdown can cancel them together."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Awaitable, *, name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        return task

    def every(
        self,
        *,
        hours: float = 0.0,
        minutes: float = 0.0,
        seconds: float = 0.0,
        tag: str | None = None,
        name: str | None = None,
    ) -> _RecurringJob:
        interval = timedelta(hours=hours, minutes=minutes, seconds=seconds)
        if interval <= timedelta(0):
            interval = timedelta(minutes=1)
        return _RecurringJob(self, interval=interval, tag=tag, name=name)

    async def shutdown(self) -> None:
        tasks, self._tasks = list(self._tasks), set()
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for task, result in zip(tasks, results):
            if isinstance(result, Exception):
                log.error(
                    "scheduler task failed during shutdown",
                    extra={"task": task.get_name()},
                    exc_info=result,
                )


class Runtime:
    """Owns the bot together with its web server and scheduler."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot
        self.scheduler = Scheduler()
        self._web_app: Optional[web.Application] = None
        self._web_runner: Optional[web.AppRunner] = None
        self._web_site: Optional[web.TCPSite] = None

    def health_payload(self) -> tuple[dict[str, Any], bool]:
        alive = not self.bot.is_closed()
        latency = getattr(self.bot, "latency", None)
        if latency is not None and math.isfinite(latency):
            latency_ms: float | None = round(latency * 1000, 1)
        else:
            latency_ms = None
        payload = {
            "ok": alive,
            **_identity(),
            "ready": self.bot.is_ready(),
            "latency_ms": latency_ms,
        }
        return payload, alive

    async def start_webserver(self, *, port: Optional[int] = None) -> None:
        if self._web_site is not None:
            return
        bind_port = port or get_port()
        self._web_app = await create_app(runtime=self)
        runner = web.AppRunner(self._web_app)
        await runner.setup()
        site = web.TCPSite(runner, host="0.0.0.0", port=bind_port)
        await site.start()
        self._web_runner, self._web_site = runner, site
        human_log.human("info", f"health server up • port={bind_port}")

    async def shutdown_webserver(self) -> None:
        site, runner = self._web_site, self._web_runner
        self._web_app = self._web_runner = self._web_site = None
        if site is not None:
            await site.stop()
        if runner is not None:
            await runner.cleanup()

    async def _log_channel(self, channel_id: int):
        await self.bot.wait_until_ready()
        channel = self.bot.get_channel(channel_id)
        if channel is not None:
            return channel
        try:
            return await self.bot.fetch_channel(channel_id)
        except Exception:
            log.exception("log channel lookup failed", extra={"channel_id": channel_id})
            return None

    async def send_log_message(self, message: str) -> None:
        """Post an operator notice to ``LOG_CHANNEL_ID``; failures are only logged."""

        channel_id = get_log_channel_id()
        content = _clip(str(message))
        if not channel_id or not content:
            return
        channel = await self._log_channel(channel_id)
        if channel is None:
            return
        try:
            await channel.send(content)
        except Exception:
            log.exception("log channel post failed", extra={"channel_id": channel_id})

    async def load_extensions(self) -> None:
        for extension in EXTENSIONS:
            await self.bot.load_extension(extension)
            human_log.human("info", "extension loaded", extension=extension)

    def schedule_jobs(self) -> None:
        from cogs.migration import MigrationCog
        from modules.migration.subscription import schedule_subscription_sweep

        cog = self.bot.get_cog(MigrationCog.__cog_name__)
        if cog is None:
            log.warning("migration cog missing; subscription sweep not scheduled")
            return
        schedule_subscription_sweep(self, cog.service.subscriptions)

    async def start(self, token: str) -> None:
        await self.start_webserver()
        await self.load_extensions()
        self.schedule_jobs()
        await self.bot.start(token)

    async def close(self) -> None:
        from shared.sheets.async_adapter import shutdown_executor

        await self.shutdown_webserver()
        await self.scheduler.shutdown()
        shutdown_executor()

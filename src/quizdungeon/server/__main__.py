"""QuizDungeon JSON-lines server entry point.

Usage: python -m quizdungeon.server

Reads JSON requests from stdin (one per line), writes JSON responses and
session notifications to stdout. Logging goes to stderr to keep the
protocol clean.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys

from quizdungeon.config.settings import Settings

from .handler import ServerHandler
from .protocol import Notification, Response

log = logging.getLogger("quizdungeon.server")


async def main(settings: Settings | None = None) -> None:
    settings = settings or Settings.load()
    loop = asyncio.get_running_loop()

    def write_line(text: str) -> None:
        sys.stdout.write(text)
        sys.stdout.flush()

    def write_notification(notification: Notification) -> None:
        write_line(notification.to_json_line())

    handler = ServerHandler(settings=settings, write_notification=write_notification)
    log.info("ready")

    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)

    while True:
        line = await reader.readline()
        if not line:
            break  # stdin closed

        line_str = line.decode("utf-8", errors="replace").strip()
        if not line_str:
            continue

        try:
            msg = json.loads(line_str)
        except json.JSONDecodeError as e:
            resp = Response(id=0, error=f"Invalid JSON: {e}")
            write_line(resp.to_json_line())
            continue

        req_id = msg.get("id", 0)
        try:
            result = await handler.dispatch(msg)
            resp = Response(id=req_id, result=result)
        except Exception as e:
            log.error("request %s failed: %s", req_id, e)
            resp = Response(id=req_id, error=str(e))

        write_line(resp.to_json_line())


def run() -> None:
    settings = Settings.load()
    logging.basicConfig(
        level=settings.get_log_level(),
        stream=sys.stderr,
        format="quizdungeon-server: %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(main(settings))


if __name__ == "__main__":
    run()

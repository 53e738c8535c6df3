"""Entry point: python -m dockscan"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from typing import Sequence

from dockscan.infrastructure.config import LOG_TAIL_DEFAULT
from dockscan.infrastructure.logger import logger, setup_logging


def _format_bytes(size: int | None) -> str:
    if size is None:
        return "-"
    value = float(size)
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if value < 1024 or unit == "TB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


def _print_rows(rows: list[tuple[str, ...]]) -> None:
    if not rows:
        return
    widths = [max(len(row[i]) for row in rows) for i in range(len(rows[0]))]
    for row in rows:
        print("  ".join(cell.ljust(width) for cell, width in zip(row, widths)).rstrip())


async def _status(service) -> int:  # type: ignore[no-untyped-def]
    endpoint = service.resolve()
    print(endpoint.detection_log)
    print()
    print(f"Backend:  {endpoint.backend.display_name}")
    print(f"Socket:   {endpoint.socket_path or '-'}")
    print(f"Ping:     {await service.ping()}")
    info = await service.fetch_engine_info()
    if info is not None:
        print(f"Engine:   {info.vm_engine}")
        print(f"Version:  {info.server_version or '-'}")
        print(f"OS:       {info.operating_system or '-'}")
        print(f"Arch:     {info.arch or '-'}")
        print(f"Runtime:  {info.runtime or '-'}")
        print(f"Memory:   {_format_bytes(info.memory_max_bytes)}")
    return 0 if endpoint.is_available else 1


async def _ps(service) -> int:  # type: ignore[no-untyped-def]
    await service.refresh_containers()
    rows = [("NAME", "IMAGE", "STATE", "STATUS", "PORTS")]
    rows += [(c.name, c.image, c.state, c.status, c.port_summary) for c in service.state.containers]
    _print_rows(rows)
    return 0


async def _images(service) -> int:  # type: ignore[no-untyped-def]
    await service.refresh_images()
    rows = [("IMAGE", "ID", "SIZE")]
    rows += [(i.display_name, i.id.removeprefix("sha256:")[:12], _format_bytes(i.size_bytes)) for i in service.state.images]
    _print_rows(rows)
    return 0


async def _volumes(service) -> int:  # type: ignore[no-untyped-def]
    await service.refresh_volumes()
    rows = [("NAME", "DRIVER", "IN USE", "SIZE")]
    rows += [
        (v.name, v.driver, "yes" if v.is_in_use else "no", _format_bytes(v.size_bytes))
        for v in service.state.volumes
    ]
    _print_rows(rows)
    return 0


async def _networks(service) -> int:  # type: ignore[no-untyped-def]
    await service.refresh_networks()
    rows = [("NAME", "DRIVER", "SCOPE", "CONTAINERS")]
    rows += [
        (n.name, n.driver, n.scope, "-" if n.container_count is None else str(n.container_count))
        for n in service.state.networks
    ]
    _print_rows(rows)
    return 0


async def _logs(service, container_id: str, tail: int, follow: bool) -> int:  # type: ignore[no-untyped-def]
    if not follow:
        text = await service.fetch_container_logs(container_id, tail=tail)
        if text is None:
            return 1
        sys.stdout.write(text)
        return 0

    if not await service.ensure_backend():
        return 1

    subscription = service.follow_logs(
        container_id,
        tail=tail,
        on_error=lambda err: print(f"[dockscan] {err.message}; reconnecting", file=sys.stderr),
    )
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, subscription.cancel)

    async for text in subscription.batches():
        sys.stdout.write(text)
        sys.stdout.flush()
    return 0


async def main(args: argparse.Namespace) -> int:
    from dockscan.app import DockscanService

    service = DockscanService()
    try:
        if args.command == "status":
            code = await _status(service)
        elif args.command == "ps":
            code = await _ps(service)
        elif args.command == "images":
            code = await _images(service)
        elif args.command == "volumes":
            code = await _volumes(service)
        elif args.command == "networks":
            code = await _networks(service)
        else:
            code = await _logs(service, args.container_id, args.tail, args.follow)

        if service.state.error_message:
            print(f"error: {service.state.error_message}", file=sys.stderr)
            code = code or 1
        return code
    finally:
        await service.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dockscan", description="Inspect the local Docker/Colima engine")
    parser.add_argument("--log-level", type=str, help="Override LOG_LEVEL (e.g. DEBUG)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show the detected backend, socket and engine info")
    sub.add_parser("ps", help="List containers")
    sub.add_parser("images", help="List images")
    sub.add_parser("volumes", help="List volumes")
    sub.add_parser("networks", help="List networks")

    logs = sub.add_parser("logs", help="Print container logs")
    logs.add_argument("container_id", type=str)
    logs.add_argument("--tail", type=int, default=LOG_TAIL_DEFAULT, help="Backlog lines to fetch")
    logs.add_argument("--follow", "-f", action="store_true", help="Keep streaming new output")
    return parser


def run(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    if args.log_level:
        setup_logging(args.log_level)

    try:
        code = asyncio.run(main(args))
    except KeyboardInterrupt:
        code = 130
    logger.debug("dockscan exiting", code=code)
    sys.exit(code)


if __name__ == "__main__":
    run()

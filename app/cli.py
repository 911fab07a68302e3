"""Operator commands for the DLsite ingestion core.

Usage:
  python main.py month 2024 5 [--force-refresh-details] [--allow-sample] [--output PATH]
  python main.py refresh csvoutput/fetched_games_2024-05.json [--concurrency 4]
  python main.py ranking [--max-items 10]
  python main.py gc [--limit 10]
  python main.py settings [--concurrency 8] [--ttl 3600]
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from loguru import logger

from app.core.config import settings
from app.core.exceptions import DLsiteError
from app.models.game import GameDetails
from app.services.dlsite_service import DLsiteService, dlsite_service


def setup_logging() -> None:
    logger.remove()
    logger.add(sys.stderr, level=settings.LOG_LEVEL.upper())


def _write_json(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


async def cmd_month(service: DLsiteService, args: argparse.Namespace) -> int:
    games = await service.fetch_catalog_by_month(
        args.year,
        args.month,
        force_refresh_details=args.force_refresh_details,
        allow_sample=args.allow_sample,
    )
    output = Path(args.output or f"csvoutput/fetched_games_{args.year:04d}-{args.month:02d}.json")
    _write_json(output, [g.model_dump(mode="json") for g in games])
    print(f"{len(games)} works written to {output}")
    return 0


async def cmd_refresh(service: DLsiteService, args: argparse.Namespace) -> int:
    path = Path(args.path)
    saved = json.loads(path.read_text(encoding="utf-8"))
    if args.concurrency:
        service.set_concurrency(args.concurrency)

    game_ids = [entry["id"] for entry in saved]
    refreshed = await service.fetch_many_details(game_ids, force_refresh=True)

    updated = []
    failures = 0
    for entry, details in zip(saved, refreshed):
        if details is None:
            failures += 1
            updated.append(GameDetails.model_validate(entry).model_dump(mode="json"))
        else:
            updated.append(details.model_dump(mode="json"))
    _write_json(path, updated)
    print(f"Refreshed {len(updated) - failures}/{len(updated)} works in {path}")
    return 0 if failures == 0 else 1


async def cmd_ranking(service: DLsiteService, args: argparse.Namespace) -> int:
    def on_progress(count: int) -> None:
        print(f"  fetched {count}/{args.max_items}", file=sys.stderr)

    games = await service.fetch_ranking(args.max_items, on_progress=on_progress)
    for game in games:
        price = "?" if game.price is None else f"{game.price:,}円"
        print(f"#{game.rank} {game.id} {game.title} [{game.genre or 'ジャンル不明'}] {price}")
    return 0


async def cmd_gc(service: DLsiteService, args: argparse.Namespace) -> int:
    result = await service.run_gc_now()
    print(f"Deleted {result.deleted_count} cached details older than {result.cutoff}")
    for entry in await service.recent_gc_logs(args.limit):
        print(f"  {entry.ts.isoformat()}  deleted={entry.deleted_count}")
    return 0


async def cmd_settings(service: DLsiteService, args: argparse.Namespace) -> int:
    if args.concurrency is not None or args.ttl is not None:
        current = await service.update_settings(concurrency=args.concurrency, ttl=args.ttl)
    else:
        current = service.get_settings()
    print(json.dumps(current, ensure_ascii=False))
    return 0


COMMANDS = {
    "month": cmd_month,
    "refresh": cmd_refresh,
    "ranking": cmd_ranking,
    "gc": cmd_gc,
    "settings": cmd_settings,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=settings.APP_NAME, description="DLsite catalog and ranking ingestion")
    sub = parser.add_subparsers(dest="command", required=True)

    month = sub.add_parser("month", help="crawl one release month")
    month.add_argument("year", type=int)
    month.add_argument("month", type=int)
    month.add_argument("--force-refresh-details", action="store_true")
    month.add_argument("--allow-sample", action="store_true")
    month.add_argument("--output")

    refresh = sub.add_parser("refresh", help="re-fetch every work in a saved month file")
    refresh.add_argument("path")
    refresh.add_argument("--concurrency", type=int, choices=range(1, 17), metavar="1-16")

    ranking = sub.add_parser("ranking", help="build the trend ranking")
    ranking.add_argument("--max-items", type=int, default=10)

    gc = sub.add_parser("gc", help="run one cache GC sweep")
    gc.add_argument("--limit", type=int, default=10)

    runtime = sub.add_parser("settings", help="show or change runtime settings")
    runtime.add_argument("--concurrency", type=int)
    runtime.add_argument("--ttl", type=float, help="details cache TTL in seconds")
    return parser


async def run(argv: list[str] | None = None, service: DLsiteService | None = None) -> int:
    args = build_parser().parse_args(argv)
    service = service or dlsite_service
    try:
        await service.load_settings()
        return await COMMANDS[args.command](service, args)
    except (DLsiteError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    finally:
        await service.close()


def main(argv: list[str] | None = None) -> int:
    setup_logging()
    return asyncio.run(run(argv))

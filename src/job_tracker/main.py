"""Command line entry point.

Loads a YAML seed into a fresh in-memory backend, signs in and prints either
the Kanban board or per-status counts:
  - board: applications grouped by column (layout from the YAML layout file)
  - stats: number of applications per status
"""

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger

from job_tracker.board import LayoutStore
from job_tracker.client import MockClient
from job_tracker.config import settings
from job_tracker.fixtures import Fixtures
from job_tracker.services import ApplicationService
from job_tracker.utils import setup_logger


async def _signed_in_service(args: argparse.Namespace, client: MockClient, layout: LayoutStore | None = None) -> ApplicationService | None:
    seed = settings.load_seed(args.seed)
    await Fixtures(client).load_seed(seed)

    result = await client.auth.sign_in_with_password(email=args.email, password=args.password)
    if result.error:
        logger.error(f"Sign-in failed for {args.email}: {result.error.message}")
        return None
    if layout is None:
        return ApplicationService(client)
    return ApplicationService(client, columns=layout.columns())


async def board_main(args: argparse.Namespace) -> int:
    client = MockClient(settings)
    layout = LayoutStore(args.layout)
    service = await _signed_in_service(args, client, layout)
    if service is None:
        return 1

    board = await service.board()
    names = {c.id: c.name for c in layout.columns()}
    logger.info("=" * 10)
    logger.info(f"Board for {args.email}")
    logger.info("=" * 10)
    for column_id, cards in board.items():
        logger.info(f"{names.get(column_id, column_id)} ({len(cards)})")
        for card in cards:
            logger.info(f"  - {card['job_title']} @ {card['company_name']} [{card['status']}]")
    return 0


async def stats_main(args: argparse.Namespace) -> int:
    client = MockClient(settings)
    service = await _signed_in_service(args, client)
    if service is None:
        return 1

    counts = await service.status_counts()
    logger.info(f"Applications for {args.email}: {sum(counts.values())}")
    for status, count in counts.items():
        if count:
            logger.info(f"  {status}: {count}")
    return 0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        prog="job-tracker",
        description="Job application tracker on a simulated backend",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--seed", type=Path, default=settings.seed_file, help="YAML seed file to load")
    common.add_argument("--email", required=True, help="Seeded user to sign in as")
    common.add_argument("--password", required=True)

    board_parser = subparsers.add_parser("board", parents=[common], help="Show the Kanban board")
    board_parser.add_argument("--layout", type=Path, default=settings.layout_file, help="Column layout YAML file")

    subparsers.add_parser("stats", parents=[common], help="Show application counts per status")

    return parser.parse_args(argv)


async def main(args: argparse.Namespace) -> int:
    """Main async entry point."""
    setup_logger(settings.log_level, settings.log_file)

    match args.command:
        case "board":
            return await board_main(args)
        case "stats":
            return await stats_main(args)
        case _:
            logger.error("Unknown command. Use: board or stats")
            return 1


def cli() -> None:
    """CLI entry point."""
    args = parse_args()

    if not args.command:
        print("Please specify a command: board or stats")
        print("  Example: job-tracker board --seed seed.yaml --email ada@example.com --password secret123")
        sys.exit(1)

    sys.exit(asyncio.run(main(args)))


if __name__ == "__main__":
    cli()

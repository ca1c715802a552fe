"""Repair chat rooms whose participant lists hold bearer credentials or lost members."""

from __future__ import annotations

import argparse
import asyncio
import json

from app.infra import postgres
from app.maintenance import chat_repair
from app.obs import logging as obs_logging


def _parse_args() -> argparse.Namespace:
	parser = argparse.ArgumentParser(description="Repair chat room participant lists")
	parser.add_argument("--dry-run", action="store_true", help="Report what would change without writing")
	parser.add_argument(
		"--delete-unrecoverable",
		action="store_true",
		help="Delete rooms that cannot be brought back to two valid participants",
	)
	return parser.parse_args()


async def main() -> None:
	args = _parse_args()
	obs_logging.configure_logging()
	try:
		counts = await chat_repair.run(dry_run=args.dry_run, delete_unrecoverable=args.delete_unrecoverable)
	finally:
		await postgres.close_pool()
	print(json.dumps({"dry_run": args.dry_run, **counts}, indent=2))


if __name__ == "__main__":
	asyncio.run(main())

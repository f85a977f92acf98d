"""Conflation Engine Module Entry Point

Command-line interface for the conflation engine. Every command refreshes the
published snapshots first; ids and workflow actions survive between runs
through the action journal configured as ``storage.actions_path``.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

from src.config.config_loader import ConfigLoader
from src.exceptions import ConflationBaseException
from src.utils import get_logger, setup_logging
from .models import DeviationAction
from .processor import ConflationProcessor

logger = get_logger(__name__)

CLEAR_ACTION = "clear"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Conflation engine - match upstream datasets against the live database"
    )
    parser.add_argument(
        "--environment",
        choices=["development", "production"],
        default="development",
        help="Environment to run against (default: development)"
    )
    parser.add_argument("--config-dir", default=None, help="Configuration directory")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")

    subparsers = parser.add_subparsers(dest="command", required=True)

    refresh = subparsers.add_parser("refresh", help="Refresh ruleset snapshots")
    refresh.add_argument("--ruleset", action="append", dest="rulesets",
                         help="Ruleset to refresh (repeatable, default: all)")
    refresh.add_argument("--dry-run", action="store_true",
                         help="Compute snapshots without publishing them")
    refresh.add_argument("--export-dir", default=None,
                         help="Write each published snapshot as GeoJSON into this directory")

    deviations = subparsers.add_parser("deviations", help="List deviations as JSON")
    deviations.add_argument("--id", type=int, default=None, help="Single deviation id")
    deviations.add_argument("--dataset", type=int, default=None, help="Dataset id filter")
    deviations.add_argument("--layer", type=int, default=None, help="Layer id filter")
    deviations.add_argument("--include-actioned", action="store_true",
                            help="Include deviations that already carry an action")

    tile = subparsers.add_parser("tile", help="Render one vector tile")
    tile.add_argument("ruleset")
    tile.add_argument("z", type=int)
    tile.add_argument("x", type=int)
    tile.add_argument("y", type=int)
    tile.add_argument("--output", required=True, help="File to write the tile bytes to")

    action = subparsers.add_parser("action", help="Record a workflow action")
    action.add_argument("deviation_id", type=int)
    action.add_argument("action", choices=[a.value for a in DeviationAction] + [CLEAR_ACTION])

    return parser


def _configure_logging(config_loader: ConfigLoader, environment: str,
                       log_level: Optional[str]) -> None:
    logging_config = config_loader.load_environment_config(environment)["logging"]
    setup_logging(
        environment=environment,
        log_level=log_level or logging_config.get("level", "INFO"),
        log_dir=logging_config.get("log_dir"),
    )


def _refresh(processor: ConflationProcessor, parsed_args) -> int:
    results = processor.cache.refresh_all(
        parsed_args.rulesets,
        max_workers=processor.config_loader.get_processing_config(
            processor.environment).get("max_workers", 1),
        dry_run=parsed_args.dry_run,
    )
    for ruleset_id, result in results.items():
        print(json.dumps(result.model_dump(), default=str))
        if parsed_args.export_dir and result.published:
            target = Path(parsed_args.export_dir) / f"{ruleset_id}.geojson"
            processor.cache.export_snapshot(ruleset_id, str(target))
    return 0 if all(r.success for r in results.values()) else 1


def main(args: Optional[list] = None) -> int:
    """Main entry point for the conflation engine module.

    Args:
        args: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parsed_args = build_parser().parse_args(args)

    try:
        config_loader = ConfigLoader(parsed_args.config_dir)
        _configure_logging(config_loader, parsed_args.environment, parsed_args.log_level)
        processor = ConflationProcessor(config_loader, environment=parsed_args.environment)

        if parsed_args.command == "refresh":
            return _refresh(processor, parsed_args)

        # Read commands work on freshly published snapshots
        processor.cache.refresh_all(
            max_workers=config_loader.get_processing_config(
                parsed_args.environment).get("max_workers", 1)
        )

        if parsed_args.command == "deviations":
            if parsed_args.id is not None:
                views = [processor.feed.get(parsed_args.id)]
            else:
                views = processor.feed.query(parsed_args.dataset, parsed_args.layer,
                                             include_actioned=parsed_args.include_actioned)
            print(json.dumps([v.to_dict() for v in views], ensure_ascii=False, default=str,
                             indent=2))
            return 0

        if parsed_args.command == "tile":
            data = processor.tile_renderer.render(parsed_args.ruleset, parsed_args.z,
                                                  parsed_args.x, parsed_args.y)
            Path(parsed_args.output).write_bytes(data)
            logger.info(f"Wrote {len(data)} bytes to {parsed_args.output}")
            return 0

        if parsed_args.command == "action":
            action = None if parsed_args.action == CLEAR_ACTION else parsed_args.action
            view = processor.feed.update_action(parsed_args.deviation_id, action)
            print(json.dumps(view.to_dict(), ensure_ascii=False, default=str, indent=2))
            return 0

    except ConflationBaseException as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 2


if __name__ == "__main__":
    sys.exit(main())

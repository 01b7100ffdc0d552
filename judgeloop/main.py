import argparse
import json
import os
from datetime import datetime
from typing import Any, Dict

from .api.server import build_orchestrator, create_app
from .engine.storage import DuckDBStorage
from .models.models import Problem
from .utils.config_manager import get_config
from .utils.logger_config import get_logger, setup_logging

logger = get_logger("main")


def seed_storage(storage: DuckDBStorage, seed: Dict[str, Any]) -> None:
    """
    Load problems and teams into the catalog and ledger.

    Entries that already exist are left untouched.
    """
    for entry in seed.get("problems", []):
        if storage.get_problem(entry["id"]) is not None:
            logger.debug(f"Problem {entry['id']} already present, skipping")
            continue
        storage.create_problem(Problem(**entry))

    for entry in seed.get("teams", []):
        team_id = entry.get("id")
        if team_id and storage.get_team(team_id) is not None:
            logger.debug(f"Team {team_id} already present, skipping")
            continue
        storage.create_team(entry["name"], team_id=team_id)

    logger.info(f"Seeded {len(seed.get('problems', []))} problems and {len(seed.get('teams', []))} teams")


def main():
    """Main entry point for the judging server"""
    parser = argparse.ArgumentParser(description="judgeloop submission server")
    parser.add_argument("--config", type=str, help="Path to JSON configuration file")
    parser.add_argument("--host", type=str, help="API server host")
    parser.add_argument("--port", type=int, help="API server port")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    parser.add_argument("--seed", type=str, help="JSON file with problems and teams to load")
    args = parser.parse_args()

    config = get_config(args.config)

    log_dir = config.get("logging.directory", "logs")
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    setup_logging(
        level="DEBUG" if args.debug else config.get("logging.level", "INFO"),
        log_file=os.path.join(log_dir, f"judgeloop_{timestamp}.log"),
        enable_colors=bool(config.get("logging.enable_colors", True)),
    )

    orchestrator = build_orchestrator(config)
    if args.seed:
        with open(args.seed, 'r', encoding='utf-8') as f:
            seed_storage(orchestrator.storage, json.load(f))

    app = create_app(config, orchestrator=orchestrator)

    host = args.host or config.get("server.host", "0.0.0.0")
    port = args.port or int(config.get("server.port", 5000))
    logger.info(f"Starting API server on {host}:{port}...")
    try:
        app.run(host=host, port=port, debug=args.debug, threaded=True, use_reloader=False)
    finally:
        orchestrator.storage.close()
        orchestrator.execution_client.close()


if __name__ == "__main__":
    main()

"""Replay events through the engine: python -m copytrade_core.engine --config cfg.yaml --events events.jsonl."""

import argparse

from copytrade_core.engine.runner import main

parser = argparse.ArgumentParser(description="Copy-trade session engine (event replay)")
parser.add_argument("--config", default=None, help="Path to config.yaml")
parser.add_argument("--events", required=True, help="Path to a JSON-lines event file")
args = parser.parse_args()
main(config_path=args.config, events_path=args.events)

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import List

from .config import load_config
from .engine import SignalEngine
from .formatters import format_signal_table, format_signals_json
from .models import Signal

log = logging.getLogger("main")

MODES = ("signals", "crossover", "structure", "short-reversal")


def _setup_logging(level: str) -> None:
    lvl = getattr(logging, (level or "INFO").upper(), logging.INFO)
    logging.basicConfig(
        level=lvl,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


async def run_mode(engine: SignalEngine, args: argparse.Namespace) -> List[Signal]:
    if args.mode == "crossover":
        return await engine.get_crossover_signals(args.timeframe)
    if args.mode == "structure":
        return await engine.get_structure_signals(args.exchange, args.timeframe)
    if args.mode == "short-reversal":
        return await engine.get_short_reversal_signals(args.timeframe, args.exchange, args.limit)
    return await engine.get_signals(args.exchange, args.timeframe)


def _render(signals: List[Signal], as_json: bool) -> str:
    return format_signals_json(signals) if as_json else format_signal_table(signals)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Crypto Signal Scanner - ranked multi-exchange trade setups")
    p.add_argument("--config", default=None, help="Path to YAML config (defaults when omitted)")
    p.add_argument("--mode", choices=MODES, default="signals")
    p.add_argument("--exchange", default="binance_futures")
    p.add_argument("--timeframe", default=None, help="5m,15m,30m,1h,2h,4h,1d (mode default when omitted)")
    p.add_argument("--limit", type=int, default=None, help="Symbols to scan in short-reversal mode")
    p.add_argument("--json", action="store_true", help="Print JSON instead of a table")
    p.add_argument("--loop", type=float, default=0.0, metavar="SECONDS", help="Re-scan every N seconds")
    p.add_argument("--clear-cache", action="store_true", help="Drop cached results before scanning")
    return p


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    cfg = load_config(args.config)
    _setup_logging(cfg.app.log_level)

    engine = SignalEngine(cfg)
    if args.clear_cache:
        engine.clear_cache()

    async def _run() -> None:
        try:
            while True:
                signals = await run_mode(engine, args)
                print(_render(signals, args.json), flush=True)
                if args.loop <= 0:
                    break
                await asyncio.sleep(args.loop)
        finally:
            # Close shared REST sessions cleanly.
            await engine.close()

    try:
        asyncio.run(_run())
        return 0
    except KeyboardInterrupt:
        return 0
    except Exception as e:
        log.exception("fatal err=%s", e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

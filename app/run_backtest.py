# app/run_backtest.py
from __future__ import annotations

import argparse
import time
from typing import Optional, Sequence

from backtest.engine import BacktestEngine
from core.results.repository import JsonlResultRepository, NullResultSink, save_backtest_result
from core.results.summary import print_result_summary
from infra.config import RunConfig
from infra.config_loader import load_run_config
from infra.data_source import build_bar_provider
from infra.logging_setup import get_logger, init_logging


# --------------------------------------------------------------------------------------
# CLI
# --------------------------------------------------------------------------------------


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Backtest one strategy against one symbol over one date range."
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default="config/backtest_run.yml",
        help="Path to the YAML/JSON run config (default: config/backtest_run.yml).",
    )
    parser.add_argument(
        "--user-id",
        type=str,
        default=None,
        help="Override the user id the result is stored under.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the result as JSON to stdout.",
    )
    return parser.parse_args(argv)


def build_engine(run_cfg: RunConfig) -> BacktestEngine:
    provider = build_bar_provider(run_cfg.data)

    if run_cfg.persistence.enabled:
        sink = JsonlResultRepository(run_cfg.persistence.results_path)
    else:
        sink = NullResultSink()

    return BacktestEngine(
        engine_cfg=run_cfg.engine,
        provider=provider,
        result_sink=sink,
    )


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)

    # ------------------------------------------------------------------
    # 1) Load high-level run configuration
    # ------------------------------------------------------------------
    run_cfg: RunConfig = load_run_config(args.config)

    logfile = init_logging(
        run_name=run_cfg.logging.name,
        level_name=run_cfg.logging.level,
        log_dir=run_cfg.logging.log_dir,
        to_console=run_cfg.logging.to_console,
        to_file=run_cfg.logging.to_file,
    )
    logger = get_logger(run_cfg.logging.name)
    logger.info("=== Starting backtest run: %s ===", run_cfg.name)
    logger.info("Description: %s", run_cfg.description or "(none)")
    if logfile is not None:
        logger.info("Log file for this run: %s", logfile)

    req = run_cfg.request
    logger.info(
        "Data source: %s | symbol=%s | %s → %s",
        run_cfg.data.source,
        req.symbol,
        req.start_date,
        req.end_date,
    )
    logger.info(
        "Strategy: name=%s entry=%s exit=%s stop_loss_pct=%s take_profit_pct=%s "
        "position_size=%s direction=%s",
        req.strategy.name,
        req.strategy.entry_rules,
        req.strategy.exit_rules,
        req.strategy.stop_loss_pct,
        req.strategy.take_profit_pct,
        req.strategy.position_size,
        req.strategy.direction.value,
    )
    logger.info(
        "Engine: max_bars=%s | periods_per_year=%d",
        str(run_cfg.engine.max_bars),
        run_cfg.engine.periods_per_year,
    )

    # ------------------------------------------------------------------
    # 2) Build engine and run (measure execution time)
    # ------------------------------------------------------------------
    engine = build_engine(run_cfg)

    t_start = time.perf_counter()
    result = engine.run(req, user_id=args.user_id or run_cfg.user_id)
    elapsed_sec = time.perf_counter() - t_start

    logger.info("Backtest execution time: %.3f seconds", elapsed_sec)

    # ------------------------------------------------------------------
    # 3) Save results & print summary
    # ------------------------------------------------------------------
    if run_cfg.persistence.enabled and run_cfg.persistence.run_dir is not None:
        run_dir = save_backtest_result(result, base_dir=run_cfg.persistence.run_dir / req.symbol)
        logger.info("Results saved to %s", run_dir)

    print_result_summary(result, logger)

    if args.json:
        print(result.to_json(indent=2))


if __name__ == "__main__":
    main()

"""
Resilience Testing - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for resilience runs.

- Provides argparse-based CLI
- Loads configuration from environment (.env) and CLI flags
- Runs against the built-in simulated system, or re-scores
  stored records with --analyze-only
- Entry point for the application

Exit codes: 0 ok | 1 invalid configuration or aborted run |
2 score below the alert threshold | 130 interrupted.

============================================================
USAGE
============================================================
resilience-testing --chaos-level medium --seed 42
resilience-testing --failure-rate 1.0 --max-concurrent 2 --duration 30
resilience-testing --analyze-only --output-dir ./resilience-reports
python -m resilience_testing --verbose

============================================================
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

from .alerts import LoggingAlertSink, WebhookAlertSink
from .config import BackpressurePolicy, ChaosLevel, EngineConfig
from .exceptions import ConfigurationError, RunAbortedError
from .models import FailureType
from .runner import ResilienceRunner, RunResult, analyze_records, create_record_store
from .targets import default_simulated_system


EXIT_OK = 0
EXIT_ERROR = 1
EXIT_BELOW_THRESHOLD = 2
EXIT_INTERRUPTED = 130


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="resilience-testing",
        description="Fault injection and resilience scoring",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Chaos Levels:
  low       - inject in 10% of tests
  medium    - inject in 50% of tests
  high      - inject in 90% of tests
  always    - inject in every test

Examples:
  %(prog)s --chaos-level high --seed 7        # Reproducible run
  %(prog)s --duration 60 --max-concurrent 2   # Keep testing for a minute
  %(prog)s --analyze-only                     # Re-score stored records
        """
    )

    # --------------------------------------------------------
    # Chaos Options
    # --------------------------------------------------------
    chaos_group = parser.add_argument_group("Chaos Options")

    chaos_group.add_argument(
        "--chaos-level",
        type=str,
        choices=[level.value for level in ChaosLevel],
        help="Preset failure-injection probability (default: medium)",
    )

    chaos_group.add_argument(
        "--failure-rate",
        type=float,
        metavar="RATE",
        help="Explicit injection probability in [0, 1]; overrides --chaos-level",
    )

    chaos_group.add_argument(
        "--max-concurrent",
        type=int,
        metavar="N",
        help="Maximum simultaneously active faults (default: 1)",
    )

    chaos_group.add_argument(
        "--backpressure",
        type=str,
        choices=[policy.value for policy in BackpressurePolicy],
        help="Wait for a slot (block) or defer immediately (defer)",
    )

    chaos_group.add_argument(
        "--failure-types",
        type=str,
        metavar="LIST",
        help="Comma-separated failure types (default: all)",
    )

    # --------------------------------------------------------
    # Run Options
    # --------------------------------------------------------
    run_group = parser.add_argument_group("Run Options")

    run_group.add_argument(
        "--duration",
        type=float,
        metavar="SECONDS",
        help="Keep starting test rounds for this long (default: one round)",
    )

    run_group.add_argument(
        "--seed",
        type=int,
        help="Random seed for reproducible fault selection",
    )

    run_group.add_argument(
        "--journal",
        dest="journal",
        action="store_const",
        const=True,
        help="Append raw outcomes to the run journal (default)",
    )

    run_group.add_argument(
        "--no-journal",
        dest="journal",
        action="store_const",
        const=False,
        help="Disable the run journal",
    )

    run_group.add_argument(
        "--skip-recovery-validation",
        action="store_true",
        help="Do not walk recovery paths after the test phase",
    )

    run_group.add_argument(
        "--analyze-only",
        action="store_true",
        help="Score stored records without running tests",
    )

    # --------------------------------------------------------
    # Output Options
    # --------------------------------------------------------
    output_group = parser.add_argument_group("Output Options")

    output_group.add_argument(
        "--output-dir",
        type=str,
        metavar="PATH",
        help="Directory for reports, graphs and records",
    )

    output_group.add_argument(
        "--database-url",
        type=str,
        metavar="URL",
        help="Store records in this database instead of JSON files",
    )

    # --------------------------------------------------------
    # Alerting Options
    # --------------------------------------------------------
    alert_group = parser.add_argument_group("Alerting Options")

    alert_group.add_argument(
        "--alert-threshold",
        type=int,
        metavar="SCORE",
        help="Alert when the score is below this (default: 70)",
    )

    alert_group.add_argument(
        "--webhook-url",
        type=str,
        metavar="URL",
        help="POST alerts to this webhook",
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )

    logging_group.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Shorthand for --log-level DEBUG",
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 1.0.0",
    )

    return parser


# ============================================================
# CLI VALIDATION
# ============================================================

def validate_args(args: argparse.Namespace) -> List[str]:
    """
    Validate CLI arguments.

    Args:
        args: Parsed arguments

    Returns:
        List of validation errors
    """
    errors = []

    if args.failure_rate is not None and not 0.0 <= args.failure_rate <= 1.0:
        errors.append("--failure-rate must be within [0, 1]")

    if args.max_concurrent is not None and args.max_concurrent < 1:
        errors.append("--max-concurrent must be at least 1")

    if args.duration is not None and args.duration < 0:
        errors.append("--duration must not be negative")

    if args.alert_threshold is not None and not 0 <= args.alert_threshold <= 100:
        errors.append("--alert-threshold must be within [0, 100]")

    if args.failure_types:
        known = {f.value for f in FailureType}
        for name in parse_failure_types(args.failure_types):
            if name not in known:
                errors.append(f"Unknown failure type: {name}")

    return errors


def parse_failure_types(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


# ============================================================
# CLI CONFIGURATION BUILDER
# ============================================================

def build_config(args: argparse.Namespace) -> EngineConfig:
    """
    Build engine configuration: environment first, CLI flags on top.

    Args:
        args: Parsed arguments

    Returns:
        EngineConfig instance
    """
    config = EngineConfig.from_env()
    harness = config.harness

    # An explicit rate, from the flag or the environment, beats the level
    if args.chaos_level:
        config.chaos_level = ChaosLevel(args.chaos_level)
        if args.failure_rate is None and not os.getenv("RESILIENCE_FAILURE_RATE"):
            harness.failure_rate = config.chaos_level.failure_rate
    if args.failure_rate is not None:
        harness.failure_rate = args.failure_rate
    if args.max_concurrent is not None:
        harness.max_concurrent_failures = args.max_concurrent
    if args.backpressure:
        harness.backpressure = BackpressurePolicy(args.backpressure)
    if args.journal is not None:
        harness.journal = args.journal

    if args.duration is not None:
        config.run_duration_seconds = args.duration
    if args.seed is not None:
        config.seed = args.seed
    if args.skip_recovery_validation:
        config.recovery_validation = False
    if args.output_dir:
        config.output_dir = args.output_dir
    if args.database_url:
        config.database_url = args.database_url
    if args.alert_threshold is not None:
        config.alert_threshold = args.alert_threshold
    if args.webhook_url:
        config.alert_webhook_url = args.webhook_url

    if args.verbose:
        config.log_level = "DEBUG"
    elif args.log_level:
        config.log_level = args.log_level

    return config


def setup_logging(level: str) -> None:
    """Configure root logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ============================================================
# MAIN ENTRY POINT
# ============================================================

async def async_main(args: argparse.Namespace, config: EngineConfig) -> int:
    """
    Async main entry point.

    Args:
        args: Parsed arguments
        config: Engine configuration

    Returns:
        Exit code
    """
    hooks = [LoggingAlertSink()]
    webhook = None
    if config.alert_webhook_url:
        webhook = WebhookAlertSink(config.alert_webhook_url)
        hooks.append(webhook)

    try:
        if args.analyze_only:
            result = await analyze_records(
                create_record_store(config),
                config=config,
                alert_hooks=hooks,
            )
        else:
            system = default_simulated_system(seed=config.seed)
            runner = ResilienceRunner(config, system.targets(), alert_hooks=hooks)
            result = await runner.execute(parse_failure_types(args.failure_types))

    except (ConfigurationError, RunAbortedError) as e:
        logging.error(f"{type(e).__name__}: {e.message}")
        return EXIT_ERROR
    finally:
        if webhook is not None:
            await webhook.close()

    print_result(result)
    return EXIT_BELOW_THRESHOLD if result.alerted else EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return EXIT_ERROR

    try:
        config = build_config(args)
    except ValueError as e:
        print(f"Error: invalid environment configuration: {e}", file=sys.stderr)
        return EXIT_ERROR

    errors = config.validate()
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return EXIT_ERROR

    setup_logging(config.log_level)
    print_banner(args, config)

    try:
        return asyncio.run(async_main(args, config))
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return EXIT_INTERRUPTED


def print_banner(args: argparse.Namespace, config: EngineConfig) -> None:
    """Print startup banner."""
    print()
    print("=" * 60)
    print("  RESILIENCE TESTING")
    print("  Fault Injection and Resilience Scoring")
    print("=" * 60)
    if args.analyze_only:
        print("  Mode:           analyze stored records")
    else:
        print(f"  Chaos Level:    {config.chaos_level.value}")
        print(f"  Failure Rate:   {config.harness.failure_rate}")
        print(f"  Max Concurrent: {config.harness.max_concurrent_failures}")
        print(f"  Duration:       {config.run_duration_seconds}s")
        print(f"  Seed:           {config.seed}")
    print(f"  Output Dir:     {config.output_dir}")
    print(f"  Log Level:      {config.log_level}")
    print("=" * 60)
    print()


def print_result(result: RunResult) -> None:
    """Print the run outcome."""
    summary = result.summary
    print()
    print("=" * 60)
    print(f"  Resilience Score: {result.score.score} / 100 ({result.score.rating})")
    print(f"  Recovery Rate:    {summary.recovery_success_rate * 100:.1f}% "
          f"({summary.passed_tests}/{summary.total_tests})")
    validation = result.recovery_validation
    if validation is not None:
        print(f"  Recovery Paths:   {validation.primary_success} primary, "
              f"{validation.secondary_success} secondary, "
              f"{validation.fallback_success} fallback, "
              f"{validation.complete_fail} failed")
    if result.comparison.has_prior:
        print(f"  Change:           {result.comparison.score_delta:+d} since last run")
    if result.alerted:
        print(f"  ALERT: score below threshold {result.alert.threshold}")
    for name, path in sorted(result.outputs.items()):
        print(f"  Wrote {name}: {path}")
    print("=" * 60)
    print()


# ============================================================
# MODULE EXECUTION
# ============================================================

if __name__ == "__main__":
    sys.exit(main())

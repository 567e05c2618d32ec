#!/usr/bin/env python3
"""
Report Definition Engine - Main Entry Point

Usage:
    python main.py evaluate report.yaml movements.csv --year 2024 --period Q2
    python main.py evaluate report.json movements.csv --year 2024 --compare-year 2023
    python main.py validate report.yaml     # Static validation only
    python main.py setup                    # Show effective configuration
"""
import os
import sys
import json
import argparse
import logging
from pathlib import Path

import pandas as pd

# Add project root to path
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

logger = logging.getLogger(__name__)


def setup_environment():
    """Load environment variables from .env file if present."""
    env_file = PROJECT_ROOT / '.env'
    if env_file.exists():
        with open(env_file) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#') and '=' in line:
                    key, value = line.split('=', 1)
                    os.environ.setdefault(key.strip(), value.strip())


def setup_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()],
    )


def load_dataset(path: str, flip_passiva: bool = False):
    """Read a movements CSV (or JSON records) into a Dataset."""
    from report_engine.data import Dataset, apply_sign_convention

    if path.lower().endswith('.json'):
        df = pd.read_json(path, orient='records')
    else:
        df = pd.read_csv(path, dtype={'code1': str, 'code2': str, 'code3': str, 'account_code': str})

    dataset = Dataset.from_dataframe(df, source=path)
    if flip_passiva:
        dataset = apply_sign_convention(dataset)
    return dataset


def build_selector(period: str, year: int, dataset, months: int):
    from report_engine.core.period_selector import parse_period_selector

    latest = dataset.latest_period()
    return parse_period_selector(period, year, latest=latest, months=months)


def print_statement(statement):
    """Print a statement as an aligned text table."""
    has_comparison = statement.metadata.get('comparison_label') is not None

    print("\n" + "="*78)
    print(f"{statement.report_name}  (v{statement.report_version})")
    print("="*78)
    header = f"{'':<38}{statement.metadata['period_label']:>20}"
    if has_comparison:
        header += f"{statement.metadata['comparison_label']:>20}"
    print(header)
    print("-"*78)

    for row in statement.rows:
        if row.is_spacer:
            print()
            continue
        label = ("  " * row.indent + row.label)[:38]
        line = f"{label:<38}{row.formatted.get('value', ''):>20}"
        if has_comparison:
            line += f"{row.formatted.get('comparison_value', ''):>20}"
            percent = row.formatted.get('variance_percent', '')
            if percent:
                line += f"  ({percent})"
        print(line)
    print("="*78)


def cmd_evaluate(args):
    """Evaluate a report definition against a dataset."""
    from config.settings import get_config
    from report_engine.core.report_definition import ReportDefinition
    from report_engine.core.report_engine import get_report_engine

    config = get_config()
    report = ReportDefinition.from_file(args.report)
    dataset = load_dataset(args.data, flip_passiva=args.flip_passiva)

    year = args.year
    if year is None:
        latest = dataset.latest_period()
        if latest is None:
            raise ValueError(f"Dataset {args.data} is empty")
        year = latest[0]

    months = config.engine.rolling_window_months
    selector = build_selector(args.period, year, dataset, months)
    comparison = None
    if args.compare_year is not None:
        comparison = build_selector(args.compare_period or args.period, args.compare_year, dataset, months)

    engine = get_report_engine()
    statement = engine.render_statement(report, dataset, selector, comparison)

    if args.json:
        print(json.dumps(statement.to_dict(), indent=2, default=str))
    else:
        print_statement(statement)


def cmd_validate(args):
    """Validate a report definition without evaluating it."""
    from report_engine.core.report_validator import get_report_validator

    with open(args.report, encoding='utf-8') as f:
        text = f.read()

    if args.report.lower().endswith(('.yaml', '.yml')):
        import yaml
        definition = yaml.safe_load(text)
    else:
        definition = json.loads(text)

    result = get_report_validator().validate(definition)

    if result.is_valid:
        print(f"✅ {result.report_id}: valid")
        return

    print(f"❌ {result.report_id or args.report}: invalid")
    if result.issues:
        for issue in result.issues:
            print(f"   - {issue}")
    elif result.error:
        print(f"   {result.error.user_message}")
    sys.exit(2)


def cmd_setup(args):
    """Show the effective configuration."""
    from config.settings import get_config

    config = get_config()

    print("\n" + "="*60)
    print("CONFIGURATION")
    print("="*60)

    print(f"\n⚙️  Engine:")
    print(f"   Max workers: {config.engine.max_workers}")
    print(f"   Rolling window: {config.engine.rolling_window_months} months "
          f"({config.engine.rolling_window_policy})")

    print(f"\n🔢 Formatting:")
    print(f"   Currency: {config.formatting.currency_symbol} "
          f"({config.formatting.currency_decimals} decimals)")
    print(f"   Percent: {config.formatting.percent_decimals} decimals")

    print(f"\n📦 Cache:")
    max_age = config.cache.max_age_hours
    print(f"   Max age: {f'{max_age}h' if max_age is not None else 'disabled'}")

    problems = config.validate()
    print()
    if problems:
        for problem in problems:
            print(f"   ❌ {problem}")
    else:
        print("   ✅ Configuration valid")
    print("="*60)


def main():
    setup_environment()

    from config.settings import get_config
    setup_logging(get_config().log_level)

    parser = argparse.ArgumentParser(
        description="Report Definition Engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py evaluate pl.yaml movements.csv --year 2024 --period Q2
  python main.py evaluate pl.yaml movements.csv --period LTM
  python main.py validate pl.yaml
  python main.py setup

Environment Variables:
  REPORT_ENGINE_MAX_WORKERS   Threads for variable resolution (default: 1)
  ROLLING_WINDOW_MONTHS       LTM window length (default: 12)
  ROLLING_WINDOW_POLICY       partial | strict (default: partial)
  REPORT_CURRENCY_SYMBOL      Currency symbol (default: €)
  LOG_LEVEL                   Logging level (default: INFO)
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # Evaluate command
    evaluate_parser = subparsers.add_parser('evaluate', help='Evaluate a report')
    evaluate_parser.add_argument('report', help='Report definition (.json, .yaml)')
    evaluate_parser.add_argument('data', help='Movements file (.csv, .json)')
    evaluate_parser.add_argument('--year', type=int, default=None,
                                 help='Base year (default: latest year in data)')
    evaluate_parser.add_argument('--period', default='All',
                                 help='All, Q1-Q4, P1-P12, 1-12 or LTM')
    evaluate_parser.add_argument('--compare-year', type=int, default=None,
                                 help='Comparison year; adds variance columns')
    evaluate_parser.add_argument('--compare-period', default=None,
                                 help='Comparison period (default: same as --period)')
    evaluate_parser.add_argument('--flip-passiva', action='store_true',
                                 help='Negate liabilities/equity (codes 60-90) before evaluation')
    evaluate_parser.add_argument('--json', action='store_true',
                                 help='Print the statement as JSON')
    evaluate_parser.set_defaults(func=cmd_evaluate)

    # Validate command
    validate_parser = subparsers.add_parser('validate', help='Validate a report definition')
    validate_parser.add_argument('report', help='Report definition (.json, .yaml)')
    validate_parser.set_defaults(func=cmd_validate)

    # Setup command
    setup_parser = subparsers.add_parser('setup', help='Show configuration')
    setup_parser.set_defaults(func=cmd_setup)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()

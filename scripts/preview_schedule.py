#!/usr/bin/env python3
"""
Command-line script to preview the computed schedule.

Usage:
    python scripts/preview_schedule.py [--today YYYY-MM-DD] [--month YYYY-MM] [--csv PATH]

Options:
    --today YYYY-MM-DD  Reference date (defaults to today in SCHEDULE_TIMEZONE)
    --month YYYY-MM     Also list the placements visible in this month
    --csv PATH          Write every placement (and failure) to a CSV file
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from jobcal import create_app
from jobcal.brain.scheduling.preview import run_preview_script
import argparse


def main():
    parser = argparse.ArgumentParser(
        description='Preview the crew schedule without changing the database'
    )
    parser.add_argument(
        '--today',
        type=str,
        help='Reference date (YYYY-MM-DD format, defaults to today)'
    )
    parser.add_argument(
        '--month',
        type=str,
        help='Month to list (YYYY-MM format)'
    )
    parser.add_argument(
        '--csv',
        type=str,
        help='Export placements to this CSV path'
    )

    args = parser.parse_args()

    # Create Flask app context
    app = create_app({"ENABLE_BACKGROUND_SCHEDULER": False})

    with app.app_context():
        try:
            preview_results = run_preview_script(
                today_str=args.today,
                month_str=args.month,
                csv_path=args.csv
            )
            sys.exit(1 if preview_results.get('failures') else 0)

        except Exception as e:
            print(f"\nFatal error: {e}", file=sys.stderr)
            sys.exit(2)


if __name__ == '__main__':
    main()

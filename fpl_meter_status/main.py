"""Command-line entry point: single lookup, CSV batch, or the HTTP server"""

import argparse
import asyncio
import csv
import getpass
import os
import sys

import fpl_meter_status.config as config
from fpl_meter_status.data.rows import parse_csv_text
from fpl_meter_status.data.submission import Credentials
from fpl_meter_status.errors import LookupAutomationError, SubmissionError
from fpl_meter_status.jobs.lookup import LookupDriver
from fpl_meter_status.jobs.scheduler import BatchScheduler
from fpl_meter_status.jobs.store import JobStore

RESULT_COLUMNS = [
    "row_index",
    "address",
    "unit",
    "meter_status",
    "property_status",
    "error",
    "entry_mode",
    "status_captured_at",
]


def build_parser():
    parser = argparse.ArgumentParser(
        description="FPL Meter Status Lookup - meter and property status from the FPL portal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Speed Modes:
  --speed dev       shorter settle delays - local debugging
  --speed super     minimal settle delays - fast connections only
  (default)         Production timing - safest for the slow portal

Credentials:
  --username / --password / --tin, or FPL_USERNAME / FPL_PASSWORD / FPL_TIN.
  The password is prompted for when neither is given.

Examples:
  python -m fpl_meter_status.main "123 Main St, Miami, FL 33101" --unit 4B
  python -m fpl_meter_status.main --csv properties.csv --output results.csv
  python -m fpl_meter_status.main --serve --port 8080
        """,
    )
    parser.add_argument("address", nargs="?", help="Address for a single lookup")
    parser.add_argument("--unit", help="Unit/apartment for a single lookup")
    parser.add_argument("--csv", dest="csv_file", help="CSV file (ADDRESS_LI, CITY, STATE, ZIP) for a batch")
    parser.add_argument("--output", help="Write batch results to this CSV file")
    parser.add_argument("--serve", action="store_true", help="Run the HTTP API server")
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=int(os.environ.get("PORT", "8080")))
    parser.add_argument("--username", default=os.environ.get("FPL_USERNAME"))
    parser.add_argument("--password", default=os.environ.get("FPL_PASSWORD"))
    parser.add_argument("--tin", default=os.environ.get("FPL_TIN"))
    parser.add_argument(
        "--speed",
        choices=["dev", "super"],
        help="Speed mode: dev or super",
    )
    parser.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser window (same as HEADLESS=false)",
    )
    return parser


def apply_speed(speed):
    """Switch config.TIMING to the requested profile, falling back when it is unsafe"""
    config.DEV_TEST_SPEED = speed == "dev"
    config.SUPER_DEV_SPEED = speed == "super"
    if speed == "dev":
        print("⚡ DEV_TEST_SPEED enabled\n")
    elif speed == "super":
        print("⚡⚡ SUPER_DEV_SPEED enabled\n")

    timing = config.get_active_timing()
    violations = config.validate_timing(timing)
    if violations:
        print("⚠️ TIMING PROFILE VIOLATIONS - Falling back to default profile:")
        for violation in violations:
            print(f"  - {violation}")
        timing = config.TIMING_PROFILES["default"]
    config.TIMING = timing
    return timing


def resolve_credentials(args):
    password = args.password
    if args.username and not password and sys.stdin.isatty():
        password = getpass.getpass("FPL password: ")
    return Credentials(username=args.username or "", password=password or "")


def write_results_csv(path, results):
    with open(path, "w", newline="", encoding="utf-8") as csvfile:
        writer = csv.DictWriter(csvfile, fieldnames=RESULT_COLUMNS)
        writer.writeheader()
        for result in results:
            record = result.to_dict()
            writer.writerow({key: record[key] for key in RESULT_COLUMNS})
    print(f"\n📊 Results written to: {path}")


async def run_single(credentials, tin, address, unit):
    driver = LookupDriver()
    result = await driver.lookup(credentials, tin, address, unit)
    print("\n" + "=" * 60)
    print(f"Address:         {result['address']}" + (f" (Unit: {result['unit']})" if result["unit"] else ""))
    print(f"Meter Status:    {result['meter_status']}")
    print(f"Property Status: {result['property_status']}")
    print("=" * 60)
    return result


async def run_batch(credentials, tin, csv_file, output=None):
    with open(csv_file, encoding="utf-8-sig") as f:
        rows = parse_csv_text(f.read())
    print(f"📋 Batch mode: {len(rows)} rows loaded from {csv_file}\n")

    store = JobStore()
    scheduler = BatchScheduler(store)
    submitted = await scheduler.submit(credentials, tin, rows)
    await scheduler.wait(submitted["job_id"])

    job = store.get_job(submitted["job_id"])
    results = store.list_results(job.job_id)
    succeeded = sum(1 for result in results if result.error is None)

    print("\n" + "=" * 60)
    print("BATCH SUMMARY")
    print("=" * 60)
    print(f"Job:        {job.job_id}")
    print(f"Status:     {job.status.value}")
    print(f"Processed:  {job.processed}/{job.total}")
    print(f"With status: {succeeded}")
    print(f"Failed:     {len(results) - succeeded}")
    print("=" * 60)

    if output:
        write_results_csv(output, results)
    return job


def serve(host, port):
    import uvicorn

    from fpl_meter_status.api.app import create_app

    uvicorn.run(create_app(), host=host, port=port)


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    modes = [bool(args.address), bool(args.csv_file), args.serve]
    if sum(modes) != 1:
        parser.error("Provide exactly one of: an address, --csv FILE, or --serve")

    apply_speed(args.speed)
    if args.headed:
        config.HEADLESS = False

    if args.serve:
        serve(args.host, args.port)
        return 0

    credentials = resolve_credentials(args)
    try:
        if args.csv_file:
            job = asyncio.run(run_batch(credentials, args.tin, args.csv_file, args.output))
            return 0 if job.status.value == "completed" else 1
        asyncio.run(run_single(credentials, args.tin, args.address, args.unit))
        return 0
    except SubmissionError as e:
        print(f"❌ {e}")
        return 2
    except LookupAutomationError as e:
        print(f"❌ Lookup failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

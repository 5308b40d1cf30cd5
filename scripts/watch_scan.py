"""
Watch one or more scans until they finish.

    python -m scripts.watch_scan SCAN_ID [SCAN_ID ...] [--interval 2000]

Exit codes: 0 all scans finished, 1 some scan was stopped early,
2 timed out, 3 API unreachable.
"""
import argparse
import asyncio
import sys

from app.features.quota.services.quota_table import get_quota_table
from app.features.scan.services.observation.controller import ControllerState, ScanObservationController
from app.features.scan.services.observation.status_client import ScanStatusClient, StatusFetchError
from app.features.scan.services.observation.tracker import ScanTracker


def print_change(controller: ScanObservationController) -> None:
    observation = controller.observation
    line = f"[{controller.scan_id}] {controller.state.value}"
    if observation is not None:
        line += f" status={observation.status.value} progress={observation.progress}"
        if observation.error_message:
            line += f" error={observation.error_message!r}"
    if controller.last_fetch_error:
        line += f" (stale: {controller.last_fetch_error})"
    print(line, flush=True)


async def watch(scan_ids, base_url=None, interval_ms=None, timeout=None, session_id=None):
    async with ScanStatusClient(base_url=base_url, session_id=session_id) as client:
        try:
            matches = await client.verify_quota_table(get_quota_table())
        except StatusFetchError as e:
            print(f"❌ Cannot reach the API: {e.message}", file=sys.stderr)
            return 3
        if not matches:
            print("⚠️  Server quota table differs from the local copy", file=sys.stderr)

        tracker = ScanTracker(client, poll_interval_ms=interval_ms, on_change=print_change)
        try:
            await tracker.track_many(scan_ids)
            states = await tracker.wait_all(timeout)
        finally:
            await tracker.aclose()

    failed = [scan_id for scan_id in scan_ids if states.get(scan_id) is not ControllerState.TERMINAL]
    return 1 if failed else 0


def main():
    parser = argparse.ArgumentParser(description="Poll scan status until every scan is finished")
    parser.add_argument("scan_ids", nargs="+")
    parser.add_argument("--base-url", help="API base url (defaults to API_BASE_URL)")
    parser.add_argument("--interval", type=int, help="Poll interval in milliseconds")
    parser.add_argument("--timeout", type=float, help="Give up after this many seconds")
    parser.add_argument("--session", help="X-Session-Id to send")
    args = parser.parse_args()

    try:
        code = asyncio.run(watch(args.scan_ids, args.base_url, args.interval, args.timeout, args.session))
    except asyncio.TimeoutError:
        print("Timed out waiting for scans", file=sys.stderr)
        code = 2
    sys.exit(code)


if __name__ == "__main__":
    main()

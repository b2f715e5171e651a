"""Command-line entry points for polling the IPFS network outside the web app.

``snapshot`` prints a single dashboard snapshot, ``watch`` keeps polling and
logs the network summary plus any fired alerts, and ``health`` exits non-zero
when the cluster or any node is down (handy for container health checks).
"""

from __future__ import annotations

import argparse
import json
import logging
import time
from typing import Iterable, Optional

from .config import DashboardConfig
from .formatting import format_uptime
from .runtime import DashboardRuntime

_LOGGER = logging.getLogger("ipfs_dashboard.cli")


def run_cli(argv: Optional[Iterable[str]] = None, runtime: Optional[DashboardRuntime] = None) -> int:
    parser = argparse.ArgumentParser(description="IPFS node dashboard tools")
    parser.add_argument("--log-level", default=None, help="Override IPFS_DASHBOARD_LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    snapshot = sub.add_parser("snapshot", help="Print one dashboard snapshot")
    snapshot.add_argument("--json", action="store_true", help="Emit raw JSON instead of a table")
    snapshot.set_defaults(handler=_run_snapshot)

    watch = sub.add_parser("watch", help="Poll the network periodically")
    watch.add_argument("--interval", type=float, default=15.0)
    watch.add_argument("--iterations", type=int, default=0, help="Stop after N polls (0 = forever)")
    watch.set_defaults(handler=_run_watch)

    health = sub.add_parser("health", help="Exit 1 unless the cluster and every node respond")
    health.set_defaults(handler=_run_health)

    args = parser.parse_args(list(argv) if argv is not None else None)
    if runtime is None:
        config = DashboardConfig.from_env()
        logging.basicConfig(
            level=(args.log_level or config.observability.log_level).upper(),
            format="[%(asctime)s] %(levelname)s %(message)s",
        )
        runtime = DashboardRuntime.bootstrap(config)
    try:
        return args.handler(runtime, args)
    finally:
        runtime.close()


def _run_snapshot(runtime: DashboardRuntime, args: argparse.Namespace) -> int:
    snapshot = runtime.refresh()
    if args.json:
        print(json.dumps(snapshot.to_dict(), indent=2))
        return 0
    print(f"Cluster {snapshot.cluster.api}: {snapshot.cluster.status}")
    for report in snapshot.nodes:
        metrics = report.metrics
        print(
            f"  {report.node:<18} {report.status:<8} peers={metrics.peers:<4} "
            f"objects={metrics.repo_objects:<8} uptime={format_uptime(metrics.uptime_seconds)}"
        )
    summary = snapshot.summary
    print(
        f"{summary.online_nodes}/{summary.total_nodes} online, {summary.total_peers} peers, "
        f"{summary.total_repo_size_formatted} stored, {summary.total_data_transferred_formatted} transferred"
    )
    for alert in snapshot.alerts:
        print(f"ALERT [{alert['severity']}] {alert['rule']}: {alert['metric']}={alert['value']}")
    return 0


def _run_watch(runtime: DashboardRuntime, args: argparse.Namespace) -> int:
    _LOGGER.info("Polling %d node(s) every %.1fs", len(runtime.config.nodes), args.interval)
    count = 0
    try:
        while True:
            snapshot = runtime.refresh()
            summary = snapshot.summary
            _LOGGER.info(
                "%d/%d nodes online, cluster %s, %d peers, %s stored",
                summary.online_nodes,
                summary.total_nodes,
                snapshot.cluster.status,
                summary.total_peers,
                summary.total_repo_size_formatted,
            )
            for alert in snapshot.alerts:
                _LOGGER.warning("[%s] %s: %s=%s", alert["severity"], alert["rule"], alert["metric"], alert["value"])
            count += 1
            if args.iterations and count >= args.iterations:
                return 0
            time.sleep(args.interval)
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown
        _LOGGER.info("Watch interrupted")
    return 0


def _run_health(runtime: DashboardRuntime, args: argparse.Namespace) -> int:
    result = runtime.ipfs_data.health_check()
    print(json.dumps(result, indent=2))
    healthy = result["cluster"] and all(result["nodes"].values())
    return 0 if healthy else 1


def main() -> None:  # pragma: no cover
    raise SystemExit(run_cli())


if __name__ == "__main__":  # pragma: no cover
    main()

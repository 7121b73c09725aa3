"""
Tâches de maintenance des paiements, à lancer périodiquement (cron, scheduler de la plateforme).

Usage:
    python -m backend.jobs expire [--max-age-minutes 120] [--limit 100]
    python -m backend.jobs repair [--limit 500]

Les deux tâches sont idempotentes: une exécution concurrente ou répétée ne crédite
jamais deux fois une même session.
"""
import argparse
import json
import logging
import os
import sys

from backend.payments import service as payments_service

logger = logging.getLogger("backend.jobs")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m backend.jobs", description="Payment housekeeping jobs")
    sub = parser.add_subparsers(dest="command", required=True)

    expire = sub.add_parser("expire", help="settle or expire stale pending sessions")
    expire.add_argument("--max-age-minutes", type=int, default=None)
    expire.add_argument("--limit", type=int, default=100)

    repair = sub.add_parser("repair", help="credit succeeded sessions missing a ledger entry")
    repair.add_argument("--limit", type=int, default=500)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "expire":
        summary = payments_service.expire_stale_sessions(args.max_age_minutes, limit=args.limit)
    else:
        summary = payments_service.repair_uncredited_sessions(limit=args.limit)
    logger.info("jobs.%s done summary=%s", args.command, summary)
    print(json.dumps({"command": args.command, "summary": summary}))
    # Code retour non nul si des crédits restent en échec (alerte cron)
    return 1 if summary.get("failed") or summary.get("deferred") else 0


if __name__ == "__main__":
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "info").upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    sys.exit(main())

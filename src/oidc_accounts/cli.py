from __future__ import annotations

import argparse
import asyncio
import inspect
import logging
import os
from typing import List, Optional


def _cmd_api(ns: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run(
        "oidc_accounts.api.main:app",
        host=ns.host,
        port=ns.port,
        reload=ns.reload,
        log_level=str(ns.log_level).lower(),
    )
    return 0


async def _cmd_init_db(ns: argparse.Namespace) -> int:
    from oidc_accounts.db import get_engine
    from oidc_accounts.models import Base

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    logging.getLogger(__name__).info("Database tables created")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="oidc-accounts",
        description="OpenID Connect login and account provisioning service.",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (DEBUG, INFO, WARNING). Defaults to env LOG_LEVEL or INFO.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    api = sub.add_parser("api", help="Serve the login endpoints.")
    api.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"))
    api.add_argument("--port", type=int, default=int(os.getenv("PORT", "3000")))
    api.add_argument("--reload", action="store_true", help="Reload on code changes.")
    api.set_defaults(func=_cmd_api)

    init_db = sub.add_parser("init-db", help="Create database tables.")
    init_db.set_defaults(func=_cmd_init_db)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    ns = parser.parse_args(argv)

    level_name = str(getattr(ns, "log_level", "") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    func = getattr(ns, "func", None)
    if func is None:
        parser.print_help()
        return 2
    if inspect.iscoroutinefunction(func):
        return asyncio.run(func(ns))
    return int(func(ns))


if __name__ == "__main__":
    raise SystemExit(main())

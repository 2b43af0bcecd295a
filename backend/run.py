"""
Ascendancy Backend — development launcher.

Checks the Adumo and session settings before handing off to uvicorn, so a
misconfigured .env fails here instead of on the first callback.

Usage:
    python run.py
    python run.py --reload --log-level debug
    python run.py --check-config
"""
import argparse
import sys

import uvicorn

from ascendancy.config import get_gateway_config, get_settings
from ascendancy.exceptions import ConfigurationError


def main():
    settings = get_settings()

    parser = argparse.ArgumentParser(description=settings.APP_NAME)
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="Restart on source changes")
    parser.add_argument("--workers", type=int, default=1)
    parser.add_argument("--log-level", default=settings.LOG_LEVEL.lower())
    parser.add_argument("--check-config", action="store_true", help="Validate settings and exit")
    args = parser.parse_args()

    try:
        gateway = get_gateway_config()
    except ConfigurationError as exc:
        sys.exit(f"Refusing to start: {exc.message}")
    if not settings.SESSION_SECRET:
        sys.exit("Refusing to start: SESSION_SECRET is not set")

    print(f"{settings.APP_NAME} {settings.APP_VERSION} [{settings.ENVIRONMENT}]")
    print(f"  Adumo:    {gateway.api_base_url} (merchant {gateway.merchant_id})")
    print(f"  Return:   {gateway.return_url}")
    print(f"  Webhook:  {gateway.notify_url}")
    if not settings.WEBHOOK_SECRET:
        print("  Warning:  WEBHOOK_SECRET unset, subscription webhooks will answer 503")
    if args.check_config:
        return

    uvicorn.run(
        "ascendancy.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=args.workers,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()

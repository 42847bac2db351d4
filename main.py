#!/usr/bin/env python3
"""
Sidecar injector - mutating admission webhook entry point.
"""

import argparse
import json
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

#
# NOTE: Keep injector imports lazy (inside functions) so `--check-patterns` does not need the
# kubernetes client or FastAPI importable.
#


def check_patterns(pattern: str) -> int:
    """Compile a matcher pattern and report whether it is valid."""
    from sidecar_injector.core.errors import PatternError
    from sidecar_injector.core.matcher import build_matcher

    try:
        matcher = build_matcher(pattern)
    except PatternError as e:
        print(f"invalid pattern: {e}", file=sys.stderr)
        return 1

    for rule in matcher.rules:
        ns = rule.namespace.value + ("*" if rule.namespace.prefix else "")
        sa = rule.service_account.value + ("*" if rule.service_account.prefix else "")
        print(f"{ns}:{sa}")
    return 0


def resolve_trusted() -> int:
    """Resolve trusted controller UIDs against the current cluster and print them as JSON."""
    from sidecar_injector.config import load_injector_config
    from sidecar_injector.core.allowlist import resolve_trusted_uids
    from sidecar_injector.providers.k8s_provider import get_k8s_provider

    cfg = load_injector_config()
    uids = resolve_trusted_uids(cfg, get_k8s_provider())
    print(json.dumps({"trusted_uids": sorted(uids)}, indent=2))
    return 0


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Sidecar injector mutating admission webhook",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve the webhook (config from env: SIDECAR_IMAGE, ALLOWED_SERVICE_ACCOUNTS, ...)
  python main.py --serve-webhook --port 8443

  # Validate a matcher pattern before rolling it out
  python main.py --check-patterns 'team-*:builder,ci:runner-*'

  # Show which trusted controller UIDs the current cluster resolves to
  python main.py --resolve-trusted
        """,
    )

    parser.add_argument("--serve-webhook", action="store_true", help="Run the admission webhook HTTPS server")
    parser.add_argument("--check-patterns", metavar="PATTERN", help="Validate a namespace:serviceaccount pattern")
    parser.add_argument(
        "--resolve-trusted", action="store_true", help="Resolve trusted controller service account UIDs and exit"
    )
    parser.add_argument("--host", default="0.0.0.0", help="Webhook server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8443, help="Webhook server listen port (default: 8443)")

    args = parser.parse_args()

    try:
        if args.check_patterns is not None:
            sys.exit(check_patterns(args.check_patterns))

        if args.resolve_trusted:
            sys.exit(resolve_trusted())

        if args.serve_webhook:
            from sidecar_injector.api.webhook import run as run_webhook

            run_webhook(host=args.host, port=args.port)
            return

        parser.print_help()
    except KeyboardInterrupt:
        print("\n\nInterrupted by user", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {str(e)}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

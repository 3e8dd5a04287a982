"""
Operator Server for Campsite Alerts.

A small Flask server that:
1. Answers health checks
2. Runs a manual "check now" for one alert and returns the outcome

Run this alongside the scheduler when operators need on-demand checks.
"""

import logging
from flask import Flask

from .pipeline import run_manual_check

logger = logging.getLogger(__name__)

app = Flask(__name__)

STATUS_CODES = {
    "success": 200,
    "not_found": 404,
    "inactive": 409,
    "error": 502,
}


@app.route("/alerts/<alert_id>/check", methods=["POST"])
def check_alert_now(alert_id: str):
    """
    Check one alert immediately.

    The response carries the check summary; a failed upstream check
    returns 502 with the user-facing reason in "error".
    """
    result = run_manual_check(alert_id)
    logger.info(f"Manual check for alert {alert_id}: {result['status']}")
    return result, STATUS_CODES.get(result["status"], 500)


@app.route("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


def run_server(host: str = "0.0.0.0", port: int = 5000, debug: bool = False):
    """Run the Flask server."""
    app.run(host=host, port=port, debug=debug)


def main():
    """CLI entry point for the operator server."""
    import argparse

    parser = argparse.ArgumentParser(description="Campsite Alerts Operator Server")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=5000, help="Port to bind to")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )

    logger.info(f"Starting operator server on {args.host}:{args.port}")
    run_server(args.host, args.port, args.debug)


if __name__ == "__main__":
    main()

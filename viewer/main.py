# =============================================================================
# NutriVision - Viewer Entry Point
# =============================================================================
# Terminal client that polls the analysis server and prints each new upload
# state: "Analyzing..." while the oracle runs, then the nutrition breakdown.
# Runs until interrupted with Ctrl+C.
# =============================================================================

import argparse
import logging
import threading
from datetime import datetime

from config import get_config
from viewer.display import STATUS_WAITING, ConsoleRenderer
from viewer.poller import AnalysisPoller

logger = logging.getLogger(__name__)


def main():
    """CLI entry point for the polling viewer."""
    parser = argparse.ArgumentParser(
        description="NutriVision - latest analysis viewer",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--server-url", type=str, default=None,
        help="Server base URL (e.g., http://127.0.0.1:3000)",
    )
    parser.add_argument(
        "--interval", type=float, default=None,
        help="Seconds between polls (overrides config)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    config = get_config()
    if args.server_url is not None:
        config.server_url = args.server_url
    if args.interval is not None:
        config.poll_interval_seconds = args.interval

    renderer = ConsoleRenderer()
    renderer.show_status(
        STATUS_WAITING, "Viewer started at " + datetime.now().strftime("%H:%M:%S")
    )
    poller = AnalysisPoller(
        server_url=config.server_url,
        renderer=renderer,
        interval=config.poll_interval_seconds,
    )
    poller.start()

    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received. Shutting down...")
    finally:
        poller.stop()


if __name__ == "__main__":
    main()

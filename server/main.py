# =============================================================================
# NutriVision - Server Entry Point
# =============================================================================
# CLI entry point for starting the FastAPI analysis server.
# =============================================================================

import argparse
import logging

import uvicorn

from config import get_config


def main():
    """Parse CLI arguments, apply overrides, and start the server."""
    parser = argparse.ArgumentParser(
        description="NutriVision - food photo analysis server",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--host", type=str, default=None, help="Server bind address")
    parser.add_argument("--port", type=int, default=None, help="Server bind port")
    parser.add_argument("--uploads-dir", type=str, default=None, help="Directory for stored images")
    parser.add_argument("--oracle-endpoint", type=str, default=None, help="Chat-completions URL of the vision model")
    parser.add_argument("--oracle-model", type=str, default=None, help="Model name sent to the oracle")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    config = get_config()

    if args.host is not None:
        config.server_host = args.host
    if args.port is not None:
        config.server_port = args.port
    if args.uploads_dir is not None:
        config.uploads_dir = args.uploads_dir
    if args.oracle_endpoint is not None:
        config.oracle_endpoint = args.oracle_endpoint
    if args.oracle_model is not None:
        config.oracle_model = args.oracle_model

    print("\n" + "=" * 60)
    print("  NutriVision - Food Analysis Server")
    print("=" * 60)
    print(f"  Oracle     : {config.oracle_endpoint}")
    print(f"  Model      : {config.oracle_model}")
    print(f"  Timeout    : {config.oracle_timeout_seconds:g}s")
    print(f"  Workers    : {config.max_concurrent_analyses}")
    print(f"  Uploads    : {config.uploads_dir}")
    print(f"  Listening  : {config.server_host}:{config.server_port}")
    print("=" * 60 + "\n")

    # The app reads get_config() in its lifespan, so keep a single process
    uvicorn.run(
        "server.app:app",
        host=config.server_host,
        port=config.server_port,
        log_level="info",
    )


if __name__ == "__main__":
    main()

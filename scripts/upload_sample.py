# =============================================================================
# NutriVision - Sample Upload Script
# =============================================================================
# Posts one food photo with its weight to the analysis server, the same way
# the weighing equipment does, and prints the accepted processing record.
#
# Usage:
#   python scripts/upload_sample.py apple.jpg --weight 250
# =============================================================================

import argparse
import json
import mimetypes
import os
import sys

import requests

from config import get_config


def upload(server_url: str, image_path: str, weight: float, timeout: float = 30.0) -> dict:
    """
    POST an image and weight to /api/analyze-food.

    Returns:
        dict: The server's JSON response body.

    Raises:
        requests.exceptions.RequestException: On network errors.
    """
    content_type = mimetypes.guess_type(image_path)[0] or "application/octet-stream"
    with open(image_path, "rb") as handle:
        response = requests.post(
            f"{server_url.rstrip('/')}/api/analyze-food",
            files={"foodImage": (os.path.basename(image_path), handle, content_type)},
            data={"weight": str(weight)},
            timeout=timeout,
        )
    return response.json()


def main():
    parser = argparse.ArgumentParser(
        description="Upload a food photo to the NutriVision server",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("image", help="Path to the food photo")
    parser.add_argument("--weight", type=float, required=True, help="Weight in grams")
    parser.add_argument("--server-url", type=str, default=None, help="Server base URL")
    args = parser.parse_args()

    server_url = args.server_url or get_config().server_url
    try:
        result = upload(server_url, args.image, args.weight)
    except requests.exceptions.RequestException as exc:
        print(f"Upload failed: {exc}", file=sys.stderr)
        sys.exit(1)

    print(json.dumps(result, indent=2))
    if not result.get("success"):
        sys.exit(1)


if __name__ == "__main__":
    main()

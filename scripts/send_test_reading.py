#!/usr/bin/env python3
"""
Send test proximity readings to the guard agent's TCP sensor feed.

Usage:
    python scripts/send_test_reading.py [distance_mm ...]

Examples:
    python scripts/send_test_reading.py
    python scripts/send_test_reading.py 30
    python scripts/send_test_reading.py 120 30 10
"""

import socket
import json
import sys
from datetime import datetime, timezone


def send_readings(
    distances: list[float],
    host: str = "localhost",
    port: int = 8129,
) -> None:
    """Send one JSON line per distance and print each ack."""

    print(f"Sending {len(distances)} reading(s) to {host}:{port}")

    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.connect((host, port))
            stream = sock.makefile("rw", encoding="utf-8", newline="\n")

            for distance in distances:
                reading = {
                    "distance_mm": distance,
                    "accuracy": 1,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                }
                stream.write(json.dumps(reading) + "\n")
                stream.flush()

                # One ack per line
                response = stream.readline().strip()
                print(f"  {distance:>7.1f}mm -> {response}")

    except ConnectionRefusedError:
        print("ERROR: Could not connect to the sensor feed.")
        print("Make sure the agent is running: python -m guard_agent.main --http-serve")
        sys.exit(1)
    except OSError as e:
        print(f"ERROR: {e}")
        sys.exit(1)


if __name__ == "__main__":
    try:
        values = [float(arg) for arg in sys.argv[1:]] or [30.0]
    except ValueError:
        print(__doc__)
        sys.exit(2)

    send_readings(values)

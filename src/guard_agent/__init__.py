"""
Mobile Guard agent package.

This package contains the on-device guard service that:
- watches a proximity sensor for close-range readings
- starts a local siren and captures an intruder photo
- reports alerts + photos to the remote alarm server
- polls the server for the shared alarm flag
"""

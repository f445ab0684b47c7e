#!/usr/bin/env python3
"""Main entry point for the gigflow API server."""

import sys
import os

# Add project root to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__)))

from gigflow.api.server import run_server

if __name__ == '__main__':
    print("=" * 60)
    print("Gigflow - Starting Server")
    print("=" * 60)
    print("\nEndpoints:")
    print("  POST /jobs/<job_id>/apply                       - Apply to a job")
    print("  POST /jobs/<job_id>/not-interested              - Mark a job not interested")
    print("  POST /applications/<id>/start-otp               - Issue start-work code")
    print("  GET  /applications/<id>/start-otp               - Show the live start-work code")
    print("  POST /applications/<id>/start                   - Submit start-work code")
    print("  POST /applications/<id>/completion              - Initiate or regenerate completion")
    print("  POST /applications/<id>/completion/confirm      - Confirm completion code")
    print("  POST /workers/<worker_id>/feed                  - Next batch of the swipe feed")
    print("  POST /workers/<worker_id>/feed/swipe            - Swipe a job")
    print("  GET  /health                                    - Health check")
    print("\n" + "=" * 60)

    run_server()

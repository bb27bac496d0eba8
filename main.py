"""
main.py: Server launcher and entry point.

Run this file to start the residence booking API:

    python main.py

This file does NOT contain application logic. See residence_booking/main.py
for the FastAPI application, service wiring, and startup sequence.

Direct uvicorn usage:
    uvicorn residence_booking.main:app --reload
"""

from __future__ import annotations

import os

import uvicorn


HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "8000"))


def main() -> None:
    """Start the residence booking server."""
    print("=" * 60)
    print("  Residence Booking Service")
    print("=" * 60)
    print(f"  Server   : http://{HOST}:{PORT}")
    print(f"  API docs : http://{HOST}:{PORT}/docs")
    print("=" * 60)
    print("  Press CTRL+C to stop\n")

    # Blocks until CTRL+C
    uvicorn.run(
        "residence_booking.main:app",
        host=HOST,
        port=PORT,
        reload=os.getenv("RELOAD", "false").lower() in {"1", "true", "yes"},
        log_level="info",
    )


if __name__ == "__main__":
    main()

"""
main.py — Server launcher and entry point.

Run this file to start the API server:

    python main.py

The operator dashboard is a separate Streamlit process:

    streamlit run dashboard/app.py

This file does NOT contain application logic. See app.py for the FastAPI
application, service wiring, and startup sequence.
"""

from __future__ import annotations

import os

import uvicorn


HOST = os.getenv("FABLAB_HOST", "127.0.0.1")
PORT = int(os.getenv("FABLAB_PORT", "8000"))


def main() -> None:
    """Start the FabLab scheduling API."""
    print("=" * 60)
    print("  FabLab — Machine Scheduling Service")
    print("=" * 60)
    print(f"  Server   : http://{HOST}:{PORT}")
    print(f"  API docs : http://{HOST}:{PORT}/docs")
    print("  Dashboard: streamlit run dashboard/app.py")
    print("=" * 60)
    print("  Press CTRL+C to stop\n")

    uvicorn.run(
        "app:app",
        host=HOST,
        port=PORT,
        reload=True,
        log_level="info",
    )


if __name__ == "__main__":
    main()

# api/index.py
"""
ASGI entrypoint.

Vercel's Python runtime looks for a variable named `app` (ASGI); locally run
`uvicorn api.index:app`. Building the app validates configuration, so missing
JWT settings stop the process here instead of at the first request.
"""
import sys
import os

# Ensure project root is on the Python path so `mailgate.*` imports resolve.
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# Use /tmp for SQLite on Vercel (filesystem is read-only except /tmp)
if os.environ.get("VERCEL") and not os.environ.get("DATABASE_URL"):
    os.environ["DATABASE_URL"] = "sqlite:////tmp/mailgate.db"

# Load .env if present (Vercel injects env vars natively, but this helps local testing)
from dotenv import load_dotenv
load_dotenv(os.path.join(ROOT, ".env"))

from mailgate.app import create_app

app = create_app()

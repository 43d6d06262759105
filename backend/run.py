#!/usr/bin/env python3
# backend/run.py
"""
Local development server for the payflow API.

Cron endpoints can be triggered by hand with curl once CRON_SECRET is set.
"""
import os
from pathlib import Path
import sys

# Add backend to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

os.environ.setdefault("ENVIRONMENT", "development")

import uvicorn

if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))
    print(f"Starting payflow on http://localhost:{port} (ENVIRONMENT={os.environ['ENVIRONMENT']})")
    print(f"API Docs: http://localhost:{port}/docs")

    uvicorn.run(
        "payflow.main:app",
        host="0.0.0.0",
        port=port,
        reload=True,
        log_level="info",
        timeout_graceful_shutdown=5,
    )

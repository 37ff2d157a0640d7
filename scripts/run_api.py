#!/usr/bin/env python
"""
Run the quote API (FastAPI under uvicorn).

Usage:
    python scripts/run_api.py [--port 8000] [--memory]

--memory keeps quotes in process memory instead of Cloudinary, which is
handy for trying the share/confirm/cancel flow without credentials.
"""
import argparse
import subprocess
import sys
import os
from pathlib import Path


def main():
    parser = argparse.ArgumentParser(description="Run the Cleaning Quote API")
    parser.add_argument('--port', type=int, default=8000)
    parser.add_argument('--memory', action='store_true', help="use the in-memory object store")
    args = parser.parse_args()

    project_root = Path(__file__).parent.parent
    os.chdir(project_root)

    # Ensure src is in python path
    env = os.environ.copy()
    src_path = str(project_root / "src")
    if "PYTHONPATH" in env:
        env["PYTHONPATH"] = f"{src_path}{os.pathsep}{env['PYTHONPATH']}"
    else:
        env["PYTHONPATH"] = src_path
    if args.memory:
        env["STORAGE_BACKEND"] = "memory"

    print(f"Starting Cleaning Quote API on :{args.port} ({env.get('STORAGE_BACKEND', 'cloudinary')})...")
    try:
        subprocess.run([
            sys.executable, "-m", "uvicorn",
            "cleaning_quote.api.main:app",
            "--host", "0.0.0.0",
            "--port", str(args.port),
            "--reload"
        ], env=env)
    except KeyboardInterrupt:
        print("\nAPI stopped.")


if __name__ == "__main__":
    main()

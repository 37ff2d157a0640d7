#!/usr/bin/env python
"""
Run the Streamlit quote page (builder, or viewer when opened with ?cid=).

Usage:
    python scripts/run_app.py [--port 8501] [--memory] [--site-url URL]

--site-url sets SITE_BASE_URL so generated share links point at the
deployed viewer rather than a bare ?cid= suffix.
"""
import argparse
import os
import subprocess
import sys
from pathlib import Path


UI_MODULE = Path('src') / 'cleaning_quote' / 'ui' / 'app_streamlit.py'


def main():
    parser = argparse.ArgumentParser(description="Run the Cleaning Quote page")
    parser.add_argument('--port', type=int, default=8501)
    parser.add_argument('--memory', action='store_true', help="use the in-memory object store")
    parser.add_argument('--site-url', default=None, help="base URL used in share links")
    args = parser.parse_args()

    project_root = Path(__file__).parent.parent
    ui_path = project_root / UI_MODULE
    if not ui_path.exists():
        parser.error(f"quote page not found at {ui_path}")

    env = os.environ.copy()
    if args.memory:
        env["STORAGE_BACKEND"] = "memory"
    if args.site_url:
        env["SITE_BASE_URL"] = args.site_url

    cmd = [
        sys.executable, '-m', 'streamlit', 'run', str(ui_path),
        '--server.port', str(args.port),
    ]
    print(f"Starting quote page on :{args.port} ({env.get('STORAGE_BACKEND', 'cloudinary')})...")
    try:
        result = subprocess.run(cmd, cwd=str(project_root), env=env)
    except KeyboardInterrupt:
        print("\nQuote page stopped.")
        return
    sys.exit(result.returncode)


if __name__ == "__main__":
    main()

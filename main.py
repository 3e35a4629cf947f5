"""Sage Codex dev launcher. Starts the API server with uvicorn."""

import argparse
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "13013")


def main():
    parser = argparse.ArgumentParser(description="Sage Codex dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--port", type=int, default=int(PORT))
    parser.add_argument("--reload", action="store_true",
                        help="Restart the server when sources change")
    args = parser.parse_args()

    if args.data_dir:
        os.environ["DATA_DIR"] = str(args.data_dir.resolve())

    print(f"Starting Sage Codex on http://localhost:{args.port} ...")
    uvicorn.run(
        "sage_codex.app:create_app",
        factory=True,
        host=HOST,
        port=args.port,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()

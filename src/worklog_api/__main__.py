"""Run the service with uvicorn: python -m worklog_api [--host H] [--port P] [--reload]."""

from __future__ import annotations

import argparse

import uvicorn


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the work log backend")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="Restart on code changes")
    args = parser.parse_args()
    uvicorn.run("worklog_api.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()

"""
Run the ticket workflow API with uvicorn.

Usage:
    python run.py
    python run.py --reload    # Auto-reload while developing
    python run.py --port 8080
"""
import argparse
import uvicorn


def main():
    parser = argparse.ArgumentParser(description="Run the ticket workflow API server")
    parser.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of worker processes (default: 1, ignored if --reload is set)"
    )

    args = parser.parse_args()

    # Per-ticket locks are in-process; several workers still rely on the version check
    print(f"Starting ticket workflow API on {args.host}:{args.port} (reload={args.reload})")

    uvicorn.run(
        "ticketflow.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=1 if args.reload else args.workers
    )


if __name__ == "__main__":
    main()

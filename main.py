"""Story Quiz - dev launcher. Serves the API with auto-reload."""

import argparse
import logging

import uvicorn

from story_quiz.config import Settings


def main():
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(description="Story Quiz dev server")
    parser.add_argument("--host", default=settings.host,
                        help=f"Bind address (default: {settings.host})")
    parser.add_argument("--port", type=int, default=settings.port,
                        help=f"Port (default: {settings.port})")
    parser.add_argument("--no-reload", action="store_true",
                        help="Disable auto-reload on code changes")
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print(f"Starting API on http://localhost:{args.port} ...")
    uvicorn.run(
        "story_quiz.app:app",
        host=args.host,
        port=args.port,
        reload=not args.no_reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()

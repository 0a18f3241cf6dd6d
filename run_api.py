"""
API Server Runner

Entry point for running the scheduling assistant API with uvicorn.

Design Considerations:
- .env loaded before settings are read
- Data directory created for file-based SQLite
- Environment profile selectable from the command line
"""

import argparse
import logging
import os
import sys
import traceback

import uvicorn
from dotenv import load_dotenv

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("api_runner")


def parse_arguments():
    """Parse command line arguments for the API server."""
    parser = argparse.ArgumentParser(description="Run the Meeting Scheduling Assistant API server")

    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind the server to (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind the server to (default: 8000)"
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development"
    )
    parser.add_argument(
        "--env",
        type=str,
        choices=["development", "testing", "production"],
        default="development",
        help="Environment to run in (default: development)"
    )

    return parser.parse_args()


def setup_environment(env: str) -> None:
    """
    Prepare environment variables and directories for the server.

    Args:
        env: Environment name (development, testing, production)
    """
    load_dotenv()
    os.environ["ENVIRONMENT"] = env
    os.environ.setdefault("DEBUG", "false" if env == "production" else "true")

    os.makedirs("data", exist_ok=True)
    logger.info("Ensured directory exists: data")


def main():
    args = parse_arguments()
    setup_environment(args.env)

    logger.info(f"Starting API server in {args.env} mode")
    logger.info(f"Server will be available at http://{args.host}:{args.port}")

    uvicorn.run(
        "api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info" if args.env == "production" else "debug"
    )


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Error running server: {str(e)}")
        logger.error(traceback.format_exc())
        sys.exit(1)

"""CLI entry point for screen-tasks.

Usage:
    # Serve the task engine over MCP (streamable HTTP)
    python -m screen_tasks serve --actuator my_browser:actuator

    # For desktop MCP clients
    python -m screen_tasks serve --actuator my_browser:actuator --transport stdio

    # With an OpenAI-compatible local model
    python -m screen_tasks serve --actuator my_browser:actuator \\
        --base-url http://localhost:11434/v1 --model qwen2.5:14b
"""

import argparse
import importlib
import logging
import os
import sys

from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()


def main():
    parser = argparse.ArgumentParser(
        prog="screen-tasks",
        description="Task execution and verification engine for browser agents",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve command
    serve_parser = subparsers.add_parser(
        "serve",
        help="Run as MCP server",
    )

    serve_parser.add_argument(
        "--actuator",
        type=str,
        required=True,
        help="Actuator module:attribute (e.g., my_browser:actuator). A class is instantiated with no arguments.",
    )

    # Server settings
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for HTTP transport (default: 8000)",
    )
    serve_parser.add_argument(
        "--transport",
        choices=["http", "stdio"],
        default="http",
        help="Transport type (default: http)",
    )

    # Storage settings
    serve_parser.add_argument(
        "--storage",
        type=str,
        default="./skills.json",
        help="Path to skills JSON file (default: ./skills.json)",
    )

    # LLM settings
    serve_parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="LLM model for action proposals (default: SCREEN_TASKS_LLM_MODEL or gpt-4o-mini)",
    )

    # API settings
    serve_parser.add_argument(
        "--base-url",
        type=str,
        default=None,
        help="Base URL for OpenAI-compatible API (e.g., http://localhost:11434/v1 for Ollama)",
    )
    serve_parser.add_argument(
        "--api-key",
        type=str,
        default=None,
        help="API key (overrides OPENAI_API_KEY env var)",
    )

    serve_parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    args = parser.parse_args()

    if args.command == "serve":
        logging.basicConfig(
            level=getattr(logging, args.log_level),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )
        run_server(args)
    else:
        parser.print_help()


def load_actuator(spec: str):
    """Load an actuator from ``module:attribute``; classes are instantiated."""
    try:
        module_path, attr_name = spec.split(":")
    except ValueError:
        print(f"Error: Invalid actuator format '{spec}'", file=sys.stderr)
        print("Expected format: module:attribute (e.g., my_browser:actuator)", file=sys.stderr)
        sys.exit(1)

    # Add current directory to path for imports
    sys.path.insert(0, os.getcwd())

    try:
        module = importlib.import_module(module_path)
        actuator = getattr(module, attr_name)
    except (ImportError, AttributeError) as e:
        print(f"Error loading actuator: {e}", file=sys.stderr)
        sys.exit(1)

    return actuator() if isinstance(actuator, type) else actuator


def run_server(args):
    """Run the MCP server with CLI settings."""
    try:
        from screen_tasks.mcp_server import build_engine, create_mcp_server
    except ImportError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Install MCP support with: pip install screen-tasks[mcp]", file=sys.stderr)
        sys.exit(1)

    actuator = load_actuator(args.actuator)
    engine = build_engine(
        actuator,
        storage_path=args.storage,
        llm_model=args.model,
        base_url=args.base_url,
        api_key=args.api_key,
    )

    log = logging.getLogger("screen_tasks")
    log.info("Starting screen-tasks MCP server")
    log.info("  Actuator: %s", args.actuator)
    log.info("  Skill storage: %s", args.storage)
    log.info("  LLM Model: %s", engine.proposer.model)
    if args.base_url:
        log.info("  Base URL: %s", args.base_url)
    log.info("  Transport: %s", args.transport)

    mcp = create_mcp_server(engine)
    _run_mcp(mcp, args)


def _run_mcp(mcp, args):
    """Run the MCP server with the specified transport."""
    if args.transport == "stdio":
        mcp.run(transport="stdio")
    else:
        logging.getLogger("screen_tasks").info("  URL: http://localhost:%d/mcp", args.port)
        import uvicorn
        app = mcp.streamable_http_app()
        uvicorn.run(app, host="0.0.0.0", port=args.port)


if __name__ == "__main__":
    main()

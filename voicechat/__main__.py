"""Run the VoiceChat API server."""

import argparse
import logging

import uvicorn

from voicechat.config import get_bool_env, get_str_env


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the VoiceChat API server")
    parser.add_argument("--host", default=get_str_env("VOICECHAT_HOST", "localhost"))
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument(
        "--reload",
        action="store_true",
        default=get_bool_env("VOICECHAT_RELOAD", False),
        help="Enable auto-reload (development only)",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error", "critical"],
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger(__name__).info("Starting VoiceChat API on %s:%s", args.host, args.port)
    uvicorn.run(
        "voicechat.server.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()

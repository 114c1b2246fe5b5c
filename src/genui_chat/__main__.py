"""
Main entry point for the Generative UI chat application.

Can be called with: python -m genui_chat

Automatically opens the app in your browser once the server is reachable.
Disable with --no-open or GENUI_CHAT_NO_BROWSER=1.
"""

import argparse
import logging
import threading
import time
import urllib.error
import urllib.request
import webbrowser

import uvicorn

from . import config
from .app import app


def _open_when_ready(url: str, timeout: float = 15.0, interval: float = 0.2):
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            with urllib.request.urlopen(url, timeout=1):
                pass
            try:
                webbrowser.open(url, new=1)
            except webbrowser.Error:
                pass  # Non-fatal if a browser cannot be opened
            return
        except (urllib.error.URLError, TimeoutError, ConnectionError):
            time.sleep(interval)


def main():
    """Main entry point for the chat application."""
    parser = argparse.ArgumentParser(
        description="Generative UI chat - a weather assistant with flight and weather cards"
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Interface to bind (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to run the server on (default: 8000)",
    )
    parser.add_argument(
        "--no-open",
        action="store_true",
        help="Do not automatically open the browser",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    logger = logging.getLogger(__name__)
    logger.info("Starting chat server...")
    logger.info(f"Open http://localhost:{args.port} in your browser to start chatting")

    if not config.get_openai_api_key():
        logger.warning("OPENAI_API_KEY is not set; model calls will fail")

    # Auto-open the browser once the server is reachable (best-effort)
    should_open = not args.no_open and not config.browser_disabled()
    url = f"http://localhost:{args.port}"
    if should_open:
        threading.Thread(target=_open_when_ready, args=(url,), daemon=True).start()

    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()

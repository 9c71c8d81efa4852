"""
weibo-post -- Post to Weibo through a real Chrome window
========================================================

Usage:
    weibo-post "Hello Weibo!"                      # compose, keep open 30s to preview
    weibo-post "Hello" --image a.png --image b.png # with images
    weibo-post "Hello" --submit                    # actually post
    python -m weibo_browser --profile ~/weibo "Hi"

The first run opens a fresh profile: log in to Weibo in the window that
appears; the session is kept in the profile directory for later runs.
"""

import argparse
import asyncio
import logging
import sys

from .config import DEFAULT_POST_TIMEOUT, LOG_FORMAT, LOG_LEVEL, PostOptions
from .errors import WeiboBrowserError
from .sequencer import post_to_weibo

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTERRUPTED = 130


def build_parser():
    parser = argparse.ArgumentParser(
        prog="weibo-post",
        description="Compose (and optionally publish) a Weibo post in a real Chrome window.",
    )
    parser.add_argument("text", nargs="*", help="Post text; words are joined with spaces")
    parser.add_argument("--image", dest="images", action="append", default=[], metavar="PATH",
                        help="Attach an image (repeatable)")
    parser.add_argument("--submit", action="store_true",
                        help="Click the send button (default: preview only)")
    parser.add_argument("--profile", dest="profile_dir", metavar="DIR",
                        help="Chrome user data dir (default: per-user data dir)")
    parser.add_argument("--chrome-path", metavar="PATH",
                        help="Chrome/Chromium/Edge executable to launch")
    parser.add_argument("--timeout", type=float, default=DEFAULT_POST_TIMEOUT, metavar="SECONDS",
                        help=f"How long to wait for the editor (default: {DEFAULT_POST_TIMEOUT:g})")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def options_from_args(args):
    text = " ".join(args.text).strip() or None
    return PostOptions(
        text=text,
        images=tuple(args.images),
        submit=args.submit,
        timeout=args.timeout,
        profile_dir=args.profile_dir,
        chrome_path=args.chrome_path,
    )


def setup_logging(verbose=False):
    level = logging.DEBUG if verbose else getattr(logging, LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    options = options_from_args(args)

    if not options.text and not options.images:
        parser.print_usage(sys.stderr)
        return EXIT_ERROR

    setup_logging(args.verbose)

    try:
        asyncio.run(post_to_weibo(options))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
        return EXIT_INTERRUPTED
    except WeiboBrowserError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
Instagram Archiver - command line entry point

Usage:
    instagram-archiver -o ./archive @username highlight:17900000000000000 https://www.instagram.com/p/CODE/
"""

import argparse
import asyncio
import os
import sys
from typing import List, Optional

from loguru import logger
from pydantic import ValidationError

from instagram_archiver.src.archiver import InstagramArchiver
from instagram_archiver.src.config import ENV_PREFIX, ArchiverConfig, get_config_summary, validate_config
from instagram_archiver.src.error_handler import AuthenticationError
from instagram_archiver.src.logging_config import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="instagram-archiver",
        description="Archive Instagram profiles, highlights, stories and media to a local directory",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  instagram-archiver -o archive @someone
  instagram-archiver -o archive --update --no-stories someone
  instagram-archiver -o archive -d ~/.ig-profile highlight:17900000000000000
  instagram-archiver -o archive https://www.instagram.com/p/CODE/
        """
    )
    parser.add_argument('targets', nargs='*', help='@username, highlight:<id> or Instagram URL')
    parser.add_argument('--output', '-o', help='Output directory for the archive')
    parser.add_argument('--user-data', '-d', dest='user_data_dir',
                        help='Browser user data directory (required to keep cookies between runs)')
    parser.add_argument('--update', action=argparse.BooleanOptionalAction, default=None,
                        help='Update an existing archive, stopping at the first highlight with nothing new')
    parser.add_argument('--highlights', action=argparse.BooleanOptionalAction, default=None,
                        help='Archive highlights of a user (default: true)')
    parser.add_argument('--stories', action=argparse.BooleanOptionalAction, default=None,
                        help='Archive current stories of a user (default: true)')
    parser.add_argument('--incognito', action=argparse.BooleanOptionalAction, default=None,
                        help='Use an incognito window for downloading public media (default: true)')
    parser.add_argument('--headless', action=argparse.BooleanOptionalAction, default=None,
                        help='Run the browser in headless mode (default: true)')
    parser.add_argument('--logout', '-l', action='store_true', default=None, help='Log out when done')
    parser.add_argument('--pause', action='store_true', default=None,
                        help='Pause once done until the user presses Enter')
    parser.add_argument('--debug', '-v', action='store_true', default=None, help='Enable debug logging')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(bool(args.debug))

    if not args.targets:
        logger.error("❌ No pages to archive. Please provide a list of Instagram pages.")
        parser.print_usage(sys.stderr)
        return 1

    if not args.output and not os.getenv(ENV_PREFIX + "OUTPUT"):
        logger.error("❌ No output directory specified. Please provide an output directory using --output.")
        return 1

    options = {key: value for key, value in vars(args).items() if key != 'targets'}
    try:
        config = ArchiverConfig.from_env(**options)
    except ValidationError as e:
        logger.error(f"❌ Invalid configuration: {e}")
        return 1

    problems = validate_config(config)
    if problems:
        for problem in problems:
            logger.error(f"❌ {problem}")
        return 1
    logger.debug(f"Configuration: {get_config_summary(config)}")

    archiver = InstagramArchiver(config)
    try:
        asyncio.run(archiver.run(args.targets))
    except AuthenticationError as e:
        logger.error(f"❌ {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("👋 Archiving interrupted by user")
        return 1

    if config.pause:
        input("Press Enter to exit...")
    return 0


if __name__ == "__main__":
    sys.exit(main())

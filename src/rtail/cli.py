"""
cli.py: Display the last N lines of a file, optionally following for new content.

Mimics Unix 'tail' command:
  rtail <file>        - Show last 10 lines
  rtail -n 20 <file>  - Show last 20 lines
  rtail -f <file>     - Follow file for new content (survives log rotation)
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from colorama import Fore, Style

from .extractor import tail
from .follow_engine import follow
from .tail_common import (
    LineDecodeError,
    MALFORMED_FAIL_FAST,
    TERMINATOR_LF,
    TailError,
    TailFileNotFoundError,
    TailPermissionError,
    get_config,
    setup_logging,
)
from .version import __version__


def _error(message: str):
    print(f"{Fore.RED}rtail:{Style.RESET_ALL} {message}", file=sys.stderr)


def _non_negative(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number of lines: '{value}'")
    if number < 0:
        raise argparse.ArgumentTypeError(f"invalid number of lines: '{value}'")
    return number


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rtail",
        description="Display the last part of a file.",
        usage="rtail [-n NUM] [-f] [options] <file>"
    )
    parser.add_argument("file", help="The file to display.")
    parser.add_argument("-n", "--lines", type=_non_negative, default=10,
                        help="Number of lines to display (default: 10).")
    parser.add_argument("-f", "--follow", action="store_true",
                        help="Output appended data as the file grows.")
    parser.add_argument("--encoding", default=None,
                        help="Text encoding of the file (default: utf-8).")
    parser.add_argument("--window-size", type=int, default=None, metavar="BYTES",
                        help="Read chunk size in bytes (default: 8192).")
    parser.add_argument("--poll-interval", type=float, default=None, metavar="MS",
                        help="Follow polling interval in milliseconds (default: 1000).")
    parser.add_argument("--lf-only", action="store_true",
                        help="Treat only LF as a terminator; keep a trailing CR in the line.")
    parser.add_argument("--strict", action="store_true",
                        help="Fail on malformed byte sequences instead of substituting U+FFFD.")
    parser.add_argument("--rotate-from", choices=["start", "end"], default=None,
                        help="Where to resume after rotation (default: start).")
    parser.add_argument("--max-retries", type=int, default=None, metavar="N",
                        help="Give up after N polls with the file missing (default: unbounded).")
    parser.add_argument("--profile", default=None,
                        help="Profile name from settings.json.")
    parser.add_argument("--log-level", default=None,
                        help="Logging level (default: WARNING).")
    parser.add_argument("--debug", action="store_true", help="Enable debug output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _emit(line: str):
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


def main(args_list=None) -> int:
    if args_list is None:
        args_list = sys.argv[1:]

    args = build_arg_parser().parse_args(args_list)

    overrides = {
        'ENCODING': args.encoding,
        'WINDOW_SIZE_BYTES': args.window_size,
        'POLL_INTERVAL_MS': args.poll_interval,
        'LINE_TERMINATOR_POLICY': TERMINATOR_LF if args.lf_only else None,
        'MALFORMED_LINE_POLICY': MALFORMED_FAIL_FAST if args.strict else None,
        'ROTATE_FROM': args.rotate_from,
        'MAX_ROTATION_RETRIES': args.max_retries,
        'LOG_LEVEL': 'DEBUG' if args.debug else args.log_level,
    }

    try:
        config = get_config(args.profile, overrides)
    except (KeyError, ValueError) as e:
        _error(str(e).strip("'\""))
        return 1

    setup_logging(config)

    file_path = Path(args.file)
    if not file_path.is_absolute():
        file_path = Path(os.getcwd()) / file_path

    try:
        if args.follow:
            follow(file_path, args.lines, _emit, config=config)
        else:
            for line in tail(file_path, args.lines, config=config):
                sys.stdout.write(line + "\n")
            sys.stdout.flush()
    except KeyboardInterrupt:
        return 0
    except TailFileNotFoundError:
        _error(f"cannot open '{args.file}' for reading: No such file")
        return 1
    except TailPermissionError:
        _error(f"cannot open '{args.file}' for reading: Permission denied")
        return 1
    except LineDecodeError as e:
        logging.error(str(e))
        _error(f"error reading '{args.file}': {e}")
        return 1
    except TailError as e:
        logging.error(f"Aborted on {file_path}: {e}")
        _error(f"error {'following' if args.follow else 'reading'} '{args.file}': {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())

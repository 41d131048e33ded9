#!/usr/bin/env python3

# Entry of tronsh

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List, Optional

try:
    import readline  # type: ignore
except Exception:  # pragma: no cover - fallback when readline unavailable
    readline = None

READLINE_ACTIVE = bool(readline)

PROMPT = os.environ.get("TRONSH_PROMPT", "tronsh> ")

LOG_FORMAT = '%(levelname)s - %(name)s - %(message)s'

from lexer import ShellError, format_tokens, tokenize  # local modules in the same folder
from ops import ShellSession, execute_line, parse_line
from syntax import format_tree


def configure_logging(debug: bool = False) -> None:
    if debug:
        level = logging.DEBUG
    else:
        name = os.environ.get("TRONSH_LOG_LEVEL", "WARNING").upper()
        level = getattr(logging, name, None)
        if not isinstance(level, int):
            level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


def setup_readline() -> None:
    if not READLINE_ACTIVE:
        return
    try:
        readline.parse_and_bind("set editing-mode emacs")
        readline.parse_and_bind("Control-l: clear-screen")
    except Exception:
        pass


def make_session() -> ShellSession:
    env = {}
    home = os.environ.get("TRONSH_HOME")
    if home:
        env["HOME"] = home
    return ShellSession(env=env)


def repl(session: Optional[ShellSession] = None, load_profile: bool = True) -> int:
    if session is None:
        session = make_session()
    if load_profile:
        session.load_profile()

    setup_readline()

    last_exit = 0
    while not session.exit_requested:
        try:
            line = input(PROMPT)
        except EOFError:
            # Ctrl-D on empty line -> exit
            print()
            break
        except KeyboardInterrupt:
            # Ctrl-C at prompt -> new line and continue
            print()
            continue

        if line.strip() == "":
            continue

        last_exit = execute_line(line, session)

    if session.exit_requested:
        return session.exit_code
    return last_exit


def print_parse(line: str, show_tokens: bool = False) -> int:
    try:
        if show_tokens:
            print("tokens: " + format_tokens(tokenize(line)))
        nodes = parse_line(line)
    except ShellError as e:
        sys.stderr.write(f"tronsh: syntax error: {e.message}\n")
        return 2
    print(format_tree(nodes))
    return 0


def parse_args(args: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="tronsh - a small shell over an in-memory file store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  tronsh                           # Interactive prompt
  tronsh -c 'echo hi | wc -c'      # Run one line and exit with its status
  tronsh --parse 'a && b | c'      # Show how a line is grouped

Environment:
  TRONSH_PROMPT      prompt string (default "tronsh> ")
  TRONSH_LOG_LEVEL   logging level (default WARNING)
  TRONSH_HOME        initial $HOME
"""
    )

    parser.add_argument(
        "--command", "-c",
        metavar="LINE",
        help="Run LINE and exit with its exit code"
    )
    parser.add_argument(
        "--parse",
        metavar="LINE",
        help="Print the command tree for LINE and exit (with --debug, the tokens too)"
    )
    parser.add_argument(
        "--no-profile",
        action="store_true",
        help="Do not run $HOME/.profile at startup"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging on stderr"
    )

    return parser.parse_args(args)


def run(args: argparse.Namespace) -> int:
    configure_logging(args.debug)
    if args.parse is not None:
        return print_parse(args.parse, show_tokens=args.debug)

    session = make_session()
    if args.command is not None:
        if not args.no_profile:
            session.load_profile()
        code = execute_line(args.command, session)
        return session.exit_code if session.exit_requested else code
    return repl(session, load_profile=not args.no_profile)


def main() -> None:
    sys.exit(run(parse_args()))


if __name__ == "__main__":
    main()

"""
userpass - Command Line Interface

Usage:
    userpass list [PATTERN]                 # List account keys
    userpass get PATTERN [--all]            # Show username/password
    userpass add KEY -u USER [--generate]   # Add an account
    userpass update PATTERN [--generate]    # New password for an account
    userpass sources                        # Show source files

Reads merge every host's source. Writes only ever touch this host's own
source (userpass.<host>.gpg), so two machines can add passwords at the same
time and sync the directory later without conflicts.
"""

import os
import re
import sys
import time
import getpass
import logging
import argparse
from typing import Callable, List, Optional

from . import __version__, crypto
from .config import BACKENDS, Config
from .errors import UserpassError
from .logger import get_logger
from .session import Session
from .store import Store

logger = logging.getLogger(__name__)


# =============================================================================
# HELPERS
# =============================================================================

def check_field(name: str, value: str) -> str:
    """Fields are stored tab-separated, one record per line."""
    if not value:
        raise UserpassError(f"{name} must not be empty")
    if "\t" in value or "\n" in value or "\r" in value:
        raise UserpassError(f"{name} must not contain tabs or newlines")
    return value


def read_secret(args, prompt: Callable[[str], str]) -> str:
    if args.generate is not None:
        if args.generate < 1:
            raise UserpassError("Password length must be at least 1")
        return crypto.generate_password(args.generate, not args.no_symbols)
    secret = prompt("Password: ")
    if prompt("Confirm password: ") != secret:
        raise UserpassError("Passwords don't match")
    return check_field("Password", secret)


def load_all(config: Config, session: Session, files: Optional[List[str]] = None) -> Store:
    """Merged, read-only view of the given files (or every discovered source)."""
    store = Store(session)
    sources = files or config.discover()
    logger.debug("Loading %d source(s)", len(sources))
    store.load(*sources)
    return store


def host_store(config: Config, session: Session) -> Store:
    """Store holding only this host's source (empty if it doesn't exist yet)."""
    path = config.source_for()
    store = Store(session)
    if os.path.exists(path):
        store.load(path)
    return store


def append_record(config: Config, session: Session, key: str, username: str, secret: str) -> str:
    path = config.source_for()
    os.makedirs(config.directory, mode=0o700, exist_ok=True)
    store = host_store(config, session)
    store.add(key, int(time.time()), username, secret)
    store.save(path)
    return path


# =============================================================================
# COMMANDS
# =============================================================================

def cmd_list(args, config, session, prompt):
    store = load_all(config, session, args.file)
    if args.pattern:
        keys = sorted(store.find_keys(args.pattern, exact=args.exact))
    else:
        keys = store.keys()
    for key in keys:
        print(key)
    return 0


def cmd_get(args, config, session, prompt):
    store = load_all(config, session, args.file)
    for record in store.lookup(args.pattern, exact=args.exact, show_all=args.all):
        print(f"{record.key}\t{record.username}\t{record.secret}")
    return 0


def cmd_add(args, config, session, prompt):
    key = check_field("Key", args.key)
    username = check_field("Username", args.username or input("Username: ").strip())
    secret = read_secret(args, prompt)
    path = append_record(config, session, key, username, secret)
    print(f"✓ Added {key} to {path}")
    if args.generate is not None:
        print(secret)
    return 0


def cmd_update(args, config, session, prompt):
    merged = load_all(config, session)
    key = merged.select_key(args.pattern, exact=args.exact)
    username = args.username or merged.latest(key)[0]
    check_field("Username", username)
    secret = read_secret(args, prompt)
    path = append_record(config, session, key, username, secret)
    print(f"✓ Updated {key} in {path}")
    if args.generate is not None:
        print(secret)
    return 0


def cmd_sources(args, config, session, prompt):
    for path in config.discover():
        print(path)
    return 0


# =============================================================================
# ARGUMENT PARSING
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="userpass", description="Multi-host password store")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--dir", dest="directory", help="Directory holding the sources")
    parser.add_argument("--host", help="Host name used for this machine's source")
    parser.add_argument("--backend", choices=BACKENDS, help="Encryption backend")
    parser.add_argument("--attempts", type=int, help="Passphrase prompts before giving up")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_generate(p):
        p.add_argument("-u", "--username")
        p.add_argument("--generate", nargs="?", type=int, const=20, metavar="LEN",
                       help="Generate a random password (default length 20)")
        p.add_argument("--no-symbols", action="store_true")

    p = sub.add_parser("list", help="List account keys")
    p.add_argument("pattern", nargs="?")
    p.add_argument("--exact", action="store_true")
    p.add_argument("-f", "--file", action="append", help="Read this source (repeatable)")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("get", help="Show credentials for matching keys")
    p.add_argument("pattern")
    p.add_argument("--exact", action="store_true")
    p.add_argument("--all", action="store_true", help="Show every record, not just resolved ones")
    p.add_argument("-f", "--file", action="append", help="Read this source (repeatable)")
    p.set_defaults(func=cmd_get)

    p = sub.add_parser("add", help="Add an account to this host's source")
    p.add_argument("key")
    add_generate(p)
    p.set_defaults(func=cmd_add)

    p = sub.add_parser("update", help="Store a new password for one account")
    p.add_argument("pattern")
    p.add_argument("--exact", action="store_true")
    add_generate(p)
    p.set_defaults(func=cmd_update)

    p = sub.add_parser("sources", help="List discovered source files")
    p.set_defaults(func=cmd_sources)

    return parser


def make_config(args, environ=None) -> Config:
    config = Config.from_env(environ)
    overrides = {
        name: getattr(args, name)
        for name in ("directory", "host", "backend", "attempts")
        if getattr(args, name) is not None
    }
    return config.replace(**overrides)


def main(argv: Optional[List[str]] = None, prompt: Callable[[str], str] = getpass.getpass,
         environ=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = make_config(args, environ)
        get_logger("userpass", logging.DEBUG if args.verbose else config.log_level)
    except ValueError as e:
        # pydantic's ValidationError is a ValueError
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    session = Session(config.make_cipher(), prompt=prompt, attempts=config.attempts)
    try:
        return args.func(args, config, session, prompt)
    except UserpassError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except re.error as e:
        print(f"ERROR: Invalid pattern: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130
    finally:
        session.close()

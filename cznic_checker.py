#!/usr/bin/env python3
"""
CZ.NIC Domain Checker
=====================
Checks whether second-level .cz domains are registered by scraping the public
nic.cz results page instead of the rate-limited WHOIS service. Reports either
that a domain is free or how many days remain until (or have passed since)
its expiration date.
"""

import argparse
import enum
import logging
import re
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable
from urllib.parse import urlparse

import requests
from tqdm import tqdm

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

BASE_URL = "https://www.nic.cz/whois/domain/"

REQUEST_TIMEOUT = 15  # seconds
POLITENESS_DELAY = 1.0  # seconds between domains

# Substrings searched for in the raw results page.
CAPTCHA_MARKER = "Kontrolní kód"
FREE_MARKER = "nebyla nalezena"
EXPIRATION_MARKER = "Datum expirace"

# Byte distance from the start of EXPIRATION_MARKER to the date, and the date
# length. Both follow the page markup and must move with it.
EXPIRATION_OFFSET = 72
EXPIRATION_LENGTH = 10

DATE_FORMAT = "%d.%m.%Y"
_DATE_RE = re.compile(r"\d{2}\.\d{2}\.\d{4}")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class CheckerError(Exception):
    """Base class for every failure that aborts a domain check."""

    # Raw input of the domain being checked, set by process_domain.
    domain: str | None = None


class InvalidDomain(CheckerError):
    pass


class NetworkError(CheckerError):
    pass


class HTTPStatusError(CheckerError):
    def __init__(self, status_code: int):
        super().__init__(f"Returned code {status_code}")
        self.status_code = status_code


class MarkerNotFound(CheckerError):
    pass


class DateParseError(CheckerError):
    pass


class CaptchaAborted(CheckerError):
    pass


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CheckResult:
    """Outcome of a single domain check."""

    domain: str
    is_free: bool
    expiration: datetime | None = None


class FetchState(enum.Enum):
    """States of the fetch / captcha loop."""

    FETCHING = "fetching"
    CAPTCHA_BLOCKED = "captcha_blocked"
    PARSED = "parsed"


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def normalize_domain(raw: str) -> str:
    """
    Canonicalize user input into a ``name.cz`` host.

    Examples:
        example            -> example.cz
        http://example.cz  -> example.cz
        sub.example.cz     -> InvalidDomain
    """
    value = raw.strip()
    if "://" not in value:
        value = "http://" + value
    if not value.lower().endswith(".cz"):
        value = value + ".cz"

    try:
        host = urlparse(value).hostname
    except ValueError as exc:
        raise InvalidDomain(f"Cannot parse {raw!r}: {exc}") from exc

    if not host:
        raise InvalidDomain(f"Cannot parse {raw!r}")
    if host.count(".") > 1:
        raise InvalidDomain("You can check only second-level .cz domains")
    if host.startswith("."):
        raise InvalidDomain(f"Missing domain name in {raw!r}")

    return host


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------

def fetch_page(url: str, timeout: float = REQUEST_TIMEOUT) -> str:
    """GET ``url`` and return the body, raising on transport or status errors."""
    logger.debug("GET %s", url)
    try:
        resp = requests.get(url, timeout=timeout)
    except requests.exceptions.RequestException as exc:
        raise NetworkError(str(exc)) from exc

    if resp.status_code != 200:
        raise HTTPStatusError(resp.status_code)

    # The page is UTF-8; without a charset header requests would guess
    # ISO-8859-1 and shift the byte offsets used by extract_expiration.
    return resp.content.decode("utf-8", errors="replace")


def wait_for_user(url: str) -> None:
    """Ask the user to solve the captcha in a browser and block on Enter."""
    print(f"Go to {url} and check the captcha.")
    try:
        input("Press enter to continue.")
    except EOFError as exc:
        raise CaptchaAborted("Standard input closed while waiting for captcha") from exc


def fetch_results_page(
    host: str,
    fetch: Callable[[str], str] = fetch_page,
    wait: Callable[[str], None] = wait_for_user,
) -> str:
    """
    Fetch the results page for ``host``, waiting out captcha challenges.

    Runs FETCHING -> CAPTCHA_BLOCKED -> FETCHING ... -> PARSED. There is no
    retry limit: while the page shows a captcha the user is asked to clear it
    and the same URL is fetched again.
    """
    url = BASE_URL + host
    state = FetchState.FETCHING
    body = ""

    while state is not FetchState.PARSED:
        if state is FetchState.FETCHING:
            body = fetch(url)
            if CAPTCHA_MARKER in body:
                logger.debug("Captcha shown for %s", url)
                state = FetchState.CAPTCHA_BLOCKED
            else:
                state = FetchState.PARSED
        else:
            wait(url)
            state = FetchState.FETCHING

    return body


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse_date(text: str) -> datetime:
    """Parse ``DD.MM.YYYY`` into a midnight-UTC datetime."""
    if not _DATE_RE.fullmatch(text):
        raise DateParseError(f"Unexpected date format: {text!r}")
    try:
        parsed = datetime.strptime(text, DATE_FORMAT)
    except ValueError as exc:
        raise DateParseError(f"Invalid date {text!r}: {exc}") from exc
    return parsed.replace(tzinfo=timezone.utc)


def extract_expiration(
    body: str,
    offset: int = EXPIRATION_OFFSET,
    length: int = EXPIRATION_LENGTH,
) -> datetime:
    """
    Pull the expiration date out of the results page.

    The date sits ``offset`` bytes after the start of EXPIRATION_MARKER in the
    UTF-8 markup and is ``length`` bytes long.
    """
    raw = body.encode("utf-8")
    index = raw.find(EXPIRATION_MARKER.encode("utf-8"))
    if index < 0:
        raise MarkerNotFound(f"{EXPIRATION_MARKER!r} not found in page")

    start = index + offset
    chunk = raw[start:start + length].decode("utf-8", errors="replace")
    return parse_date(chunk)


def parse_result(
    domain: str,
    body: str,
    extract: Callable[[str], datetime] = extract_expiration,
) -> CheckResult:
    """Turn a results page into a CheckResult."""
    if FREE_MARKER in body:
        return CheckResult(domain=domain, is_free=True)
    return CheckResult(domain=domain, is_free=False, expiration=extract(body))


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

def days_until(expiration: datetime, now: datetime | None = None) -> int:
    """Whole calendar days from ``now`` (UTC) to ``expiration``."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return (expiration.date() - now.date()).days


def _plural_days(days: int) -> str:
    return "1 day" if days == 1 else f"{days} days"


def format_result(result: CheckResult, now: datetime | None = None) -> str:
    """Format the one-line status for a result."""
    if result.is_free:
        return f"{result.domain}\tFree"

    days = days_until(result.expiration, now)
    if days == 0:
        status = "Expires today"
    elif days < 0:
        status = f"Expired {_plural_days(-days)} ago"
    else:
        status = f"Expires in {_plural_days(days)}"
    return f"{result.domain}\t{status}"


def report(result: CheckResult, emit: Callable[[str], None] = print) -> None:
    logger.debug(
        "Checked %s: free=%s expiration=%s",
        result.domain,
        result.is_free,
        result.expiration.date().isoformat() if result.expiration else None,
    )
    emit(format_result(result))


# ---------------------------------------------------------------------------
# Single-domain check
# ---------------------------------------------------------------------------

def check_domain(raw: str, timeout: float = REQUEST_TIMEOUT) -> CheckResult:
    """Normalize, fetch (through the captcha gate) and parse one domain."""
    host = normalize_domain(raw)
    body = fetch_results_page(host, fetch=lambda url: fetch_page(url, timeout=timeout))
    return parse_result(host, body)


def process_domain(
    raw: str,
    emit: Callable[[str], None] = print,
    timeout: float = REQUEST_TIMEOUT,
) -> None:
    """
    Check and report one domain, then pause for POLITENESS_DELAY.

    A CheckerError is tagged with ``raw`` and re-raised; main() turns it
    into a fatal exit.
    """
    try:
        result = check_domain(raw, timeout=timeout)
    except CheckerError as exc:
        exc.domain = raw
        raise

    report(result, emit=emit)
    logger.debug("Sleeping %.1fs", POLITENESS_DELAY)
    time.sleep(POLITENESS_DELAY)


# ---------------------------------------------------------------------------
# Modes
# ---------------------------------------------------------------------------

def run_batch(
    domains: list[str],
    progress: bool = False,
    timeout: float = REQUEST_TIMEOUT,
) -> None:
    """Check ``domains`` in order, stopping at the first failure."""
    with tqdm(
        domains,
        desc="Checking domains",
        unit="domain",
        disable=not progress,
    ) as pbar:
        for raw in pbar:
            process_domain(raw, emit=tqdm.write, timeout=timeout)


def read_domain() -> str:
    return input("\nEnter domain: ").rstrip("\n")


def run_interactive(timeout: float = REQUEST_TIMEOUT) -> None:
    """
    Prompt for domains until stdin closes or the user interrupts.

    Blank lines are skipped rather than checked, and end of input returns
    normally so piped domain lists exit with status 0. Every other line is
    processed as in batch mode, failures included.
    """
    print("Press CTRL-C to quit.")
    while True:
        try:
            raw = read_domain()
        except EOFError:
            print()
            return
        if not raw.strip():
            continue
        process_domain(raw, timeout=timeout)


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cznic-checker",
        usage="%(prog)s [options] domain1[.cz] [domain2 [domain3]...]",
        description="Check whether .cz domains are registered using the nic.cz website.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  cznic-checker example              # Check example.cz\n"
            "  cznic-checker foo bar.cz           # Check foo.cz, then bar.cz\n"
            "  cznic-checker -i                   # Prompt for domains\n"
        ),
    )
    parser.add_argument(
        "domains",
        nargs="*",
        help="Domains to check (the .cz suffix is optional)",
    )
    parser.add_argument(
        "--interactive", "-i",
        action="store_true",
        help="Interactive mode: read domains from standard input",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=REQUEST_TIMEOUT,
        help=f"Per-request timeout in seconds (default: {REQUEST_TIMEOUT})",
    )
    parser.add_argument(
        "--progress",
        action="store_true",
        help="Show a progress bar while checking multiple domains",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose/debug logging",
    )
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    return build_parser().parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.timeout <= 0:
        logger.error("Timeout must be positive, got %s", args.timeout)
        sys.exit(2)

    try:
        if args.interactive:
            run_interactive(timeout=args.timeout)
        elif args.domains:
            run_batch(args.domains, progress=args.progress, timeout=args.timeout)
        else:
            build_parser().print_help()
    except CheckerError as exc:
        logger.error("%s\t%s", exc.domain, exc)
        sys.exit(1)
    except KeyboardInterrupt:
        print()
        sys.exit(130)


if __name__ == "__main__":
    main()

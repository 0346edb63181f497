"""Entry point for Quotabar.

SECURITY MODEL:
- No mode ever prints tokens, credentials, or partial keys.
- Only usage percentages and reset times are displayed.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path

import click

from . import __version__, settings as prefs
from .auth import check_token_health, resolve_token
from .config import (
    CREDENTIALS_PATH, ENV_HTTP_TIMEOUT, ENV_INTERVAL, TEXT_BETA_WARNING,
    TEXT_SEPARATOR,
)
from .errors import ConfigError, UsageError, format_error
from .refresh import next_token
from .settings import Settings
from .theme import resolve_theme
from .usage_api import FetchContext, fetch_usage
from .utils import parse_duration, pct_str

log = logging.getLogger(__name__)

LOG_DIR = Path(os.environ.get("XDG_STATE_HOME") or Path.home() / ".local" / "state") / "quotabar"


def _setup_logging(verbose: bool = False, console: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    fmt = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
    datefmt = "%H:%M:%S"

    root = logging.getLogger()
    root.setLevel(level)

    # The dashboard owns the terminal, so only one-shot mode logs to stderr
    if console:
        sh = logging.StreamHandler()
        sh.setLevel(logging.DEBUG if verbose else logging.WARNING)
        sh.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
        root.addHandler(sh)

    # File handler so a session can be diagnosed after the fact
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(LOG_DIR / "quotabar.log"), mode="w", encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
        root.addHandler(fh)
    except OSError:
        pass  # log file is optional


class DurationType(click.ParamType):
    """Click parameter for "30s", "1m", "500ms" or bare seconds."""

    name = "duration"

    def convert(self, value, param, ctx):
        if isinstance(value, (int, float)):
            return float(value)
        try:
            return parse_duration(value)
        except ValueError:
            self.fail(f"{value!r} is not a valid duration (e.g. 15s, 1m)", param, ctx)


DURATION = DurationType()


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--interval", type=DURATION, default=None,
              help=f"Poll interval (e.g. 15s, 1m). [env {ENV_INTERVAL}]")
@click.option("--creds", "creds", type=click.Path(dir_okay=False, path_type=Path),
              default=None, help="Path to credentials JSON (uses ANTHROPIC_OAUTH_TOKEN if set).")
@click.option("--http-timeout", type=DURATION, default=None,
              help=f"HTTP timeout (e.g. 5s, 2s). [env {ENV_HTTP_TIMEOUT}]")
@click.option("--beta-header", default=None, help="Anthropic beta header value.")
@click.option("--no-color", is_flag=True, help="Disable colors.")
@click.option("--high-contrast", is_flag=True, help="Use a high-contrast palette.")
@click.option("--once", is_flag=True, help="Fetch once, print usage and exit.")
@click.option("--json", "as_json", is_flag=True, help="With --once, print the raw usage JSON.")
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging.")
@click.version_option(__version__, prog_name="quotabar")
def main(interval, creds, http_timeout, beta_header, no_color, high_contrast, once, as_json, verbose):
    """Quotabar: live Claude usage windows in your terminal."""
    _setup_logging(verbose, console=once)

    defaults, warnings = prefs.env_defaults()
    for warning in warnings:
        click.echo(warning, err=True)

    cfg_beta = (beta_header if beta_header is not None else defaults["beta_header"]).strip()

    try:
        token = resolve_token(creds)
    except ConfigError as exc:
        click.echo(f"token error: {exc}", err=True)
        sys.exit(1)

    cfg = Settings(
        token=token,
        credentials_path=creds or CREDENTIALS_PATH,
        refresh_interval=interval if interval is not None else defaults["interval"],
        http_timeout=http_timeout if http_timeout is not None else defaults["http_timeout"],
        beta_header=cfg_beta,
        no_color=no_color,
        high_contrast=high_contrast or defaults["high_contrast"],
    )
    try:
        cfg.validate()
    except ConfigError as exc:
        click.echo(f"config error: {exc}", err=True)
        sys.exit(1)

    if cfg.uses_default_beta_header:
        click.echo(TEXT_BETA_WARNING, err=True)

    status, health_msg = check_token_health(cfg.credentials_path)
    if status in ("expired", "expiring"):
        log.warning("%s", health_msg)
    else:
        log.debug("Token health: %s", health_msg)

    if once:
        _run_once(cfg, as_json)
        return

    from .app import App
    App(cfg, resolve_theme(cfg.no_color, cfg.high_contrast)).run()


def _run_once(cfg: Settings, as_json: bool) -> None:
    """One-shot fetch: print current usage and exit non-zero on failure."""
    ctx = FetchContext(next_token(), cfg.http_timeout)
    try:
        snapshot = fetch_usage(ctx, cfg.token, cfg.beta_header)
    except UsageError as exc:
        click.echo(f"error: {format_error(exc)}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(snapshot.to_payload(), indent=2))
        return

    rows = snapshot.rows()
    if not rows:
        click.echo(format_error(UsageError.no_data()))
        return
    for row in rows:
        meta = TEXT_SEPARATOR.join(p for p in (row.reset, row.remaining) if p)
        click.echo(f"{row.label:<8} {pct_str(row.percent)}  {meta}".rstrip())


if __name__ == "__main__":
    main()

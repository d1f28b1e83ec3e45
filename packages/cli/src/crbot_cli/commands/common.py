"""Helpers shared by the subcommands."""

from __future__ import annotations

import click


def require_store(ctx: click.Context):
    """Return the configured store, refusing the no-op default."""
    from crbot_store.noop import NoOpStore

    store = ctx.obj.get("store") if ctx.obj else None
    if store is None or isinstance(store, NoOpStore):
        raise click.UsageError("No store configured. Add 'store: sqlite' or 'store: gist' to .crbot.yml.")
    return store


def require_llm_credentials(settings: dict) -> None:
    if settings["model"] == "anthropic" and not settings.get("anthropic_api_key"):
        raise click.UsageError("ANTHROPIC_API_KEY environment variable is not set.")
    if settings["model"] == "openai" and not settings.get("openai_api_key"):
        raise click.UsageError("OPENAI_API_KEY environment variable is not set.")

"""srscore CLI: deck management, study queue, reviews and statistics."""

import asyncio
import json
import logging
import sys
from collections.abc import Callable, Coroutine
from dataclasses import asdict
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer

from srscore.application.config import AppConfig, resolve_config
from srscore.application.factory import Services, build_services
from srscore.domain.errors import InvalidRating, InvalidTimeSpent, SchedulingError
from srscore.domain.models import Card, Rating, Scope
from srscore.domain.stats.models import StatsRange

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="srscore: spaced-repetition scheduling engine.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Subgroups
# ---------------------------------------------------------------------------

config_app = typer.Typer(help="Manage srscore configuration.")
app.add_typer(config_app, name="config")

deck_app = typer.Typer(help="Create, tune and delete decks.", no_args_is_help=True)
app.add_typer(deck_app, name="deck")

card_app = typer.Typer(help="Add and delete cards.", no_args_is_help=True)
app.add_typer(card_app, name="card")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _resolve(ctx: typer.Context) -> AppConfig:
    overrides = ctx.obj.get("overrides", {}) if ctx.obj else {}
    try:
        config = resolve_config(overrides)
    except ValueError as e:
        typer.secho(f"Invalid configuration: {e}", fg="red", err=True)
        raise typer.Exit(2) from None

    # 1 (default) = warnings, 2 = info, 3+ = debug
    if config.verbose >= 3:
        logging.getLogger().setLevel(logging.DEBUG)
    elif config.verbose == 2:
        logging.getLogger().setLevel(logging.INFO)
    return config


def _run(ctx: typer.Context, make: Callable[[Services, AppConfig], Coroutine[Any, Any, T]]) -> T:
    """
    Build services from the resolved config, run one coroutine against them,
    and turn domain errors into exit codes.
    """
    config = _resolve(ctx)
    logger.debug(f"Config: backend={config.backend}, user={config.user_id}, tz={config.timezone}")
    services = build_services(config)
    try:
        return asyncio.run(make(services, config))
    except (InvalidRating, InvalidTimeSpent) as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(2) from None
    except SchedulingError as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(1) from None
    except ValueError as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(2) from None
    finally:
        services.close()


def parse_rating(value: str) -> int:
    """Accept 1-4 or again/hard/good/easy."""
    if value.isdigit():
        return int(value)
    try:
        return int(Rating[value.upper()])
    except KeyError:
        raise InvalidRating(value) from None


def _card_dict(card: Card) -> dict[str, Any]:
    return {
        "id": card.id,
        "deck_id": card.deck_id,
        "state": card.state.value,
        "learning_step": card.learning_step,
        "interval_seconds": card.interval.total_seconds(),
        "ease": round(card.ease, 4),
        "due_at": card.due_at.isoformat() if card.due_at else None,
        "review_count": card.review_count,
        "laps_count": card.laps_count,
    }


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    raise TypeError(f"not JSON serializable: {type(value).__name__}")


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 0,
    db: Annotated[Path | None, typer.Option("--db", help="SQLite database path.")] = None,
    backend: Annotated[
        str | None, typer.Option(help="Storage backend: sqlite, memory (not persisted).")
    ] = None,
    user: Annotated[str | None, typer.Option(help="Learner ID.")] = None,
    tz: Annotated[str | None, typer.Option("--tz", help="Learner timezone (IANA name).")] = None,
):
    """Global settings for srscore."""
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {
        "database_path": db,
        "backend": backend,
        "user_id": user,
        "timezone": tz,
        "verbose": 1 + verbose if verbose else None,
    }


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = _resolve(ctx)
    d = config.model_dump()
    typer.echo(json.dumps(d, indent=2, default=str))


# ---------------------------------------------------------------------------
# Deck subgroup
# ---------------------------------------------------------------------------


@deck_app.command("create")
def deck_create(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Deck name.")],
    new_per_day: Annotated[
        int, typer.Option("--new-per-day", help="New cards introduced per day.")
    ] = 20,
):
    """Create an empty deck."""

    async def run(s: Services, config: AppConfig):
        return await s.decks.create_deck(config.user_id, name, new_per_day)

    deck = _run(ctx, run)
    typer.echo(deck.id)


@deck_app.command("list")
def deck_list(
    ctx: typer.Context,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """List decks with today's new/learning/review counts."""

    async def run(s: Services, config: AppConfig):
        scope = Scope(config.user_id)
        decks = await s.decks.list_decks(config.user_id)
        counts = await s.queue.get_deck_counts(scope, _now())
        return decks, counts

    decks, counts = _run(ctx, run)

    if json_output:
        typer.echo(
            json.dumps(
                [
                    {
                        "id": d.id,
                        "name": d.name,
                        "new_cards_per_day": d.new_cards_per_day,
                        "counts": asdict(counts[d.id]),
                    }
                    for d in decks
                ],
                indent=2,
            )
        )
        return

    if not decks:
        typer.secho("No decks.", fg="yellow")
        return
    for d in decks:
        c = counts[d.id]
        typer.echo(
            f"{d.id}  {d.name}  new={c.new} learning={c.learning} "
            f"review={c.review} done_today={c.completed_today}"
        )


@deck_app.command("set-limit")
def deck_set_limit(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck ID.")],
    new_per_day: Annotated[int, typer.Argument(help="New cards introduced per day.")],
):
    """Change a deck's daily new-card cap."""

    async def run(s: Services, config: AppConfig):
        return await s.decks.update_settings(config.user_id, deck_id, new_cards_per_day=new_per_day)

    deck = _run(ctx, run)
    typer.secho(f"{deck.name}: {deck.new_cards_per_day} new cards per day", fg="green")


@deck_app.command("delete")
def deck_delete(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck ID.")],
    force: Annotated[bool, typer.Option("--force", "-f", help="Skip confirmation.")] = False,
):
    """Delete a deck and its cards. Review history is kept."""
    if not force:
        typer.confirm(f"Delete deck {deck_id} and all its cards?", abort=True)

    async def run(s: Services, config: AppConfig):
        await s.decks.delete_deck(config.user_id, deck_id)

    _run(ctx, run)
    typer.secho(f"Deleted {deck_id}", fg="green")


@deck_app.command("reset")
def deck_reset(
    ctx: typer.Context,
    deck_id: Annotated[
        str | None, typer.Argument(help="Deck ID. Omit to reset every deck.")
    ] = None,
    force: Annotated[bool, typer.Option("--force", "-f", help="Skip confirmation.")] = False,
):
    """Return cards to the New state. Review history is kept."""
    if not force:
        typer.confirm(f"Reset progress of {deck_id or 'all decks'}?", abort=True)

    async def run(s: Services, config: AppConfig):
        return await s.decks.reset_progress(config.user_id, deck_id)

    count = _run(ctx, run)
    typer.secho(f"Reset {count} cards.", fg="green")


# ---------------------------------------------------------------------------
# Card subgroup
# ---------------------------------------------------------------------------


@card_app.command("add")
def card_add(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck ID.")],
    count: Annotated[int, typer.Option("--count", "-n", help="Number of cards.")] = 1,
):
    """Add new cards to a deck and print their IDs."""

    async def run(s: Services, config: AppConfig):
        return await s.decks.add_cards(config.user_id, deck_id, count)

    for card in _run(ctx, run):
        typer.echo(card.id)


@card_app.command("delete")
def card_delete(
    ctx: typer.Context,
    card_id: Annotated[str, typer.Argument(help="Card ID.")],
):
    """Delete a card. Review history is kept."""

    async def run(s: Services, config: AppConfig):
        await s.decks.delete_card(config.user_id, card_id)

    _run(ctx, run)
    typer.secho(f"Deleted {card_id}", fg="green")


# ---------------------------------------------------------------------------
# Study commands
# ---------------------------------------------------------------------------


@app.command()
def due(
    ctx: typer.Context,
    deck: Annotated[str | None, typer.Option(help="Restrict to one deck.")] = None,
    limit: Annotated[int | None, typer.Option(help="Maximum cards to return.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """[bold green]Show[/bold green] the next batch of cards to study."""

    async def run(s: Services, config: AppConfig):
        return await s.queue.get_due_cards(Scope(config.user_id, deck), _now(), limit)

    cards = _run(ctx, run)

    if json_output:
        typer.echo(json.dumps([_card_dict(c) for c in cards], indent=2))
        return

    if not cards:
        typer.secho("Nothing due. All done for now!", fg="green")
        return
    for card in cards:
        due_at = card.due_at.isoformat() if card.due_at else "-"
        typer.echo(f"{card.id}  {card.state.value:<10}  due={due_at}")


@app.command()
def review(
    ctx: typer.Context,
    card_id: Annotated[str, typer.Argument(help="Card ID.")],
    rating: Annotated[str, typer.Argument(help="1-4 or again/hard/good/easy.")],
    time_ms: Annotated[
        int, typer.Option("--time-ms", help="Time spent on the card in milliseconds.")
    ] = 0,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Rate a card and print its new schedule."""

    async def run(s: Services, config: AppConfig):
        return await s.reviews.review_card(
            card_id, parse_rating(rating), time_ms, user_id=config.user_id
        )

    card, event = _run(ctx, run)

    if json_output:
        typer.echo(json.dumps({"card": _card_dict(card), "event": asdict(event)},
                              indent=2, default=_json_default))
        return

    typer.secho(
        f"{card.state.value}: next review {card.due_at.isoformat()} "
        f"(interval {card.interval}, ease {card.ease:.2f})",
        fg="green",
    )


@app.command()
def stats(
    ctx: typer.Context,
    deck: Annotated[str | None, typer.Option(help="Restrict to one deck.")] = None,
    days: Annotated[
        int, typer.Option(help="Summarize the last N days (1 = today).")
    ] = 1,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Summarize study activity and the current streak."""

    async def run(s: Services, config: AppConfig):
        now = _now()
        stats_range = StatsRange.last_days(now, days, config.tz)
        return await s.stats.aggregate_stats(Scope(config.user_id, deck), stats_range, now)

    summary = _run(ctx, run)

    if json_output:
        typer.echo(json.dumps(asdict(summary), indent=2))
        return

    typer.echo(f"Reviews: {summary.reviews}  Cards: {summary.cards_studied}")
    typer.echo(f"New: {summary.new_cards}  Repeated: {summary.review_cards}")
    typer.echo(f"Time: {summary.total_time_ms // 1000}s  Avg: {summary.avg_time_ms} ms/card")
    typer.echo(
        f"Total: {summary.total_reviews} reviews over {summary.total_study_days} days "
        f"({summary.total_time_studied})"
    )
    typer.secho(f"Streak: {summary.streak_days} days", fg="green")


@app.command()
def history(
    ctx: typer.Context,
    deck: Annotated[str | None, typer.Option(help="Restrict to one deck.")] = None,
    days: Annotated[int | None, typer.Option(help="Days of history.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show per-day review counts."""

    async def run(s: Services, config: AppConfig):
        return await s.stats.aggregate_history(
            Scope(config.user_id, deck), days or config.history_days, _now()
        )

    activity = _run(ctx, run)

    if json_output:
        typer.echo(json.dumps([asdict(a) for a in activity], indent=2, default=_json_default))
        return

    if not activity:
        typer.secho("No reviews yet.", fg="yellow")
        return
    for item in activity:
        typer.echo(f"{item.day.isoformat()}  {item.card_count:>4} cards  {item.time_spent_ms // 1000}s")

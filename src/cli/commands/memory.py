"""Memory CLI commands: show, context, add, cleanup, delete, clear, stats."""

import asyncio

import click
from rich.console import Console
from rich.table import Table

from cli.utils import get_components
from observability import log_run_summary

console = Console()


def _value(v) -> str:
    return str(getattr(v, "value", v))


@click.group()
def memory():
    """Inspect and maintain per-user memory."""
    pass


@memory.command("show")
@click.argument("user_id")
def memory_show(user_id: str):
    """List a user's stored facts with their importance scores."""
    from memory.scoring import calculate_importance_score, sort_by_importance

    c = get_components()
    mem = asyncio.run(c["store"].get(user_id))

    if mem.language_preference:
        console.print(f"Language preference: {_value(mem.language_preference)}")
    if not mem.facts:
        console.print("No facts stored.")
        return

    table = Table(title=f"Memory for {user_id}")
    table.add_column("ID", style="dim", width=8)
    table.add_column("Tier", width=9)
    table.add_column("Category", width=10)
    table.add_column("Fact")
    table.add_column("Conf", width=5)
    table.add_column("Score", width=6)
    table.add_column("Uses", width=4)
    table.add_column("Expires", width=10)

    for f in sort_by_importance(mem.facts):
        table.add_row(
            f.id[:8],
            _value(f.tier),
            _value(f.category),
            f.content[:80],
            f"{f.confidence:.1f}",
            f"{calculate_importance_score(f):.1f}",
            str(f.use_count),
            f.expires_at.strftime("%Y-%m-%d") if f.expires_at else "never",
        )

    console.print(table)
    console.print(f"[dim]{mem.stats.total_facts} facts, ~{mem.stats.token_usage} tokens[/]")


@memory.command("context")
@click.argument("user_id")
def memory_context(user_id: str):
    """Print the context block a chat turn would receive (marks facts used)."""
    c = get_components()
    text = asyncio.run(c["loader"].load_for_context(user_id))
    if not text:
        console.print("No memory for this user.")
        return
    click.echo(text)


@memory.command("add")
@click.argument("user_id")
@click.argument("content")
@click.option(
    "--category",
    "-c",
    type=click.Choice(["profile", "preference", "technical", "project"]),
    default="preference",
)
@click.option(
    "--tier", "-t", type=click.Choice(["core", "important", "context"]), default="context"
)
@click.option("--confidence", type=float, default=1.0, show_default=True)
def memory_add(user_id: str, content: str, category: str, tier: str, confidence: float):
    """Add a fact by hand (deduplicated, then cleaned up)."""
    c = get_components()
    raw = {"content": content, "category": category, "tier": tier, "confidence": confidence}
    added = asyncio.run(
        c["pipeline"].remember(user_id, [raw], conversation_id="cli", auto_extracted=False)
    )
    if added:
        console.print(f"[green]Added[/] 1 fact for {user_id}")
    else:
        console.print("[yellow]Not added[/] (duplicate, invalid, or store error)")


@memory.command("cleanup")
@click.argument("user_id")
def memory_cleanup(user_id: str):
    """Run eviction now: expiry, tier caps, token budget."""
    c = get_components()
    removed = asyncio.run(c["cleaner"].cleanup(user_id))
    log_run_summary()
    if removed is None:
        console.print("[red]Cleanup failed[/] or timed out. See logs.")
        raise SystemExit(1)
    console.print(f"Evicted {removed} fact(s)")


@memory.command("delete")
@click.argument("user_id")
@click.argument("fact_id")
def memory_delete(user_id: str, fact_id: str):
    """Delete one fact by id."""
    c = get_components()
    if asyncio.run(c["store"].delete(user_id, fact_id)):
        console.print(f"Deleted fact {fact_id[:8]}")
    else:
        console.print(f"[red]Fact not found: {fact_id}[/]")


@memory.command("clear")
@click.argument("user_id")
@click.confirmation_option(prompt="Delete ALL facts for this user? This cannot be undone.")
def memory_clear(user_id: str):
    """Delete every fact for a user (language preference is kept)."""
    c = get_components()
    count = asyncio.run(c["store"].clear(user_id))
    console.print(f"Deleted {count} facts")


@memory.command("stats")
@click.argument("user_id")
def memory_stats(user_id: str):
    """Show fact counts by tier and category."""
    c = get_components()
    stats = asyncio.run(c["store"].get_stats(user_id))

    console.print(f"Total facts: {stats['total_facts']}")
    console.print(f"Token usage: ~{stats['token_usage']}")
    console.print(f"Language preference: {stats['language_preference'] or 'not set'}")
    console.print(f"Last cleanup: {stats['last_cleanup']}")
    for label, key in (("By tier", "by_tier"), ("By category", "by_category")):
        if stats[key]:
            console.print(f"\n{label}:")
            for name, cnt in sorted(stats[key].items()):
                console.print(f"  {name}: {cnt}")

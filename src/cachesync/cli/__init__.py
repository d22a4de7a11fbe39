"""CLI commands for cachesync.

Provides command-line interface using Typer:
- cachesync listen: Run event handlers and the consistency sweep
- cachesync invalidate: Delete cache keys matching a pattern
- cachesync stats: Run one consistency sweep and print cache metrics
- cachesync publish: Publish an event to a channel

Usage:
    cachesync --help
    cachesync listen
    cachesync invalidate "product:*"
    cachesync stats
    cachesync publish cachesync:events:product PRODUCT_DELETED --payload '{"productId": "p1"}'
"""

import typer

from cachesync.cli.invalidate_cmd import invalidate
from cachesync.cli.listen import app as listen_app
from cachesync.cli.publish_cmd import publish
from cachesync.cli.stats_cmd import app as stats_app

# Main CLI application
app = typer.Typer(
    name="cachesync",
    help="cachesync: Redis cache consistency and event propagation",
    no_args_is_help=True,
)

app.add_typer(listen_app, name="listen")
app.add_typer(stats_app, name="stats")

# Commands taking positional arguments are plain commands: a group callback
# stops parsing options after its first positional argument
app.command("invalidate", help="Delete cache keys matching a pattern")(invalidate)
app.command("publish", help="Publish an event to a channel")(publish)


@app.callback()
def callback() -> None:
    """cachesync: Redis cache consistency and event propagation."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()

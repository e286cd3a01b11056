# ==============================================================================
# Clickpulse CLI
# ==============================================================================
"""
Command-line interface for the clickpulse tracking pipeline.

Usage:
    clickpulse --help
    clickpulse serve --port 8000
    clickpulse simulate --events 40
    clickpulse analytics --window 30d
    clickpulse patterns --per-session
    clickpulse funnel /products /cart /checkout
    clickpulse dropoff
    clickpulse config show
    clickpulse db init
    clickpulse db add-site my-credential my-site
"""

# ==============================================================================
# App Configuration
# ==============================================================================
# Set consistent terminal width for help output formatting
import os

import typer

if "COLUMNS" not in os.environ:
    os.environ["COLUMNS"] = "115"

app = typer.Typer(
    name="clickpulse",
    help="Clickpulse event tracking and behavior analytics CLI",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Serve command is imported from clickpulse.cli.serve
from clickpulse.cli.serve import serve

app.command("serve")(serve)

# Simulate command is imported from clickpulse.cli.simulate
from clickpulse.cli.simulate import simulate

app.command("simulate")(simulate)

# Analytics commands are imported from clickpulse.cli.analytics
from clickpulse.cli.analytics import show_analytics, show_dropoff, show_funnel, show_patterns

app.command("analytics")(show_analytics)
app.command("patterns")(show_patterns)
app.command("funnel")(show_funnel)
app.command("dropoff")(show_dropoff)

config_app = typer.Typer(
    help="Configuration management",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")

# Register config commands from cli.config module
from clickpulse.cli.config import config_show

config_app.command("show")(config_show)

db_app = typer.Typer(
    help="Event store database operations",
    no_args_is_help=True,
)
app.add_typer(db_app, name="db")

# Register database commands from cli.db module
from clickpulse.cli.db import db_add_site, db_init

db_app.command("init")(db_init)
db_app.command("add-site")(db_add_site)


# ==============================================================================
# Entry Point
# ==============================================================================


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()

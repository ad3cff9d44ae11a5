"""httpmitm CLI - Command line interface for httpmitm."""

from httpmitm.cli.commands import cli


def main() -> None:
    """Main entry point for the httpmitm CLI."""
    cli()


__all__ = ["main", "cli"]

"""Module entry point for `python -m itam.cli`."""

if __name__ == "__main__":  # pragma: no cover (invocation driven)
    from itam.cli import cli

    cli()

"""Entry point for `python -m recast_cli` and the `recast` console script."""

from __future__ import annotations

from recast_cli.app import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()

"""``python -m cli`` and the ``sqlflow`` console script."""

from __future__ import annotations

from cli.app import app


def main() -> None:
    app(prog_name="sqlflow")


if __name__ == "__main__":
    main()

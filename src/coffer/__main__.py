"""Module entrypoint to run Coffer via `python -m coffer`."""

from coffer.cli import main


def run() -> None:
    """Dispatch to the console script handler."""

    main()


if __name__ == "__main__":  # pragma: no cover
    run()

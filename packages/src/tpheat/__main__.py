"""``python -m tpheat`` entry point."""

from tpheat import App, __version__


def main() -> None:
    App(version=__version__).cli()


if __name__ == "__main__":
    main()

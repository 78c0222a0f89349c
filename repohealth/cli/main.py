"""Main CLI entry point for repohealth."""

from repohealth.cli.commands.health import health


def main() -> None:
    health(prog_name="health")


if __name__ == "__main__":
    main()

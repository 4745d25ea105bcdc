"""Allow ``python -m replrelay``."""

from replrelay.cli.main import main

if __name__ == "__main__":
    main()

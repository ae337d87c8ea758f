"""Allow ``python -m launchpad_indexer``."""

from launchpad_indexer.cli import main

if __name__ == "__main__":
    main()

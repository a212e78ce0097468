"""Main entry point for the episode aggregator package."""

from episode_aggregator.cli import main

if __name__ == "__main__":
    main()

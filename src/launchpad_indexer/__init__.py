"""Launchpad Indexer - Solana LaunchLab pool and trade indexer."""

__version__ = "0.1.0"

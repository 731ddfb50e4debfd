"""NFT Activity Bot - Marketplace event notifications for chat and social feeds."""

__version__ = "0.1.0"

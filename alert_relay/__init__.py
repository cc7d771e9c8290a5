"""alert-relay: watches public channels, batches new posts, asks an AI
classifier whether the situation changed and relays transitions."""

__version__ = "0.1.0"

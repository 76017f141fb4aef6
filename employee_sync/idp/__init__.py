"""Identity provider API clients."""

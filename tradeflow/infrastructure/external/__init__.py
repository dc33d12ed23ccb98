"""External adapters: event bus and Kraken transport/REST clients."""

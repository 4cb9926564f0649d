"""Building blocks for MinBFT replicas and clients."""

__version__ = "0.1.0"

__all__ = [
    "authenticator",
    "config",
    "connector",
    "crypto",
    "keystore",
    "ledger",
    "replicastub",
    "sgxusig",
    "usig",
]
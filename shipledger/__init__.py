"""shipledger - shipment lifecycle ledger with smart-contract checks."""

__version__ = "0.1.0"

"""gatechain - ordered process-compliance gates with a tamper-evident evidence ledger."""

__version__ = "0.1.0"

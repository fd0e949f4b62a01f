"""offline-pay — offline transaction propagation and ledger synchronization."""

__version__ = "0.1.0"

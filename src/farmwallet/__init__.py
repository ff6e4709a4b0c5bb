"""farmwallet: personal finance ledger, stock positions and DCA plans."""

__version__ = "0.1.0"

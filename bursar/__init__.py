# bursar - School fee billing and double-entry ledger engine
__version__ = "1.0.0"

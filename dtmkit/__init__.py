"""Client toolkit for distributed transactions: saga, TCC, XA, reliable messages and barriers."""

__version__ = "0.1.0"
"""Tool composer - run chains of tools as validated, leveled workflows."""

__version__ = "0.1.0"

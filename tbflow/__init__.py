"""TBFlow: Zoho Books trial balance export and archiving."""

__version__ = "0.1.0"

"""ticketflow: rule-driven derivation of report records from ticket exports."""

__version__ = "0.1.0"

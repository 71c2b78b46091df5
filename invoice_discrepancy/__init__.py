"""Invoice discrepancy engine: recompute declared invoice amounts and flag differences."""

__version__ = "0.1.0"

"""Paper trading desk: risk gating and trade outcome reconciliation."""

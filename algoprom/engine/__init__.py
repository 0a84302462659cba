"""Check engine — run executor, scheduler and lifecycle coordination."""

"""
jobs/ - Command-line entrypoints.

Modules:
- run_fetch: fetch / watch / providers commands
"""

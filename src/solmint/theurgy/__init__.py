"""
Theurgy - command implementations for the solmint CLI.

Each module contributes click commands; cli.py registers them on the
top-level group.
"""

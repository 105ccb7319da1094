"""
Operational tools for relstore.

- cli: create, inspect and edit databases from the command line
"""

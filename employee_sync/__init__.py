"""
Employee Number Sync - Backfill identity provider employee numbers from the directory.

This package pages through identity provider users, finds the active accounts
that are missing an employee number, looks each one up in LDAP/Active Directory
by display name and writes the directory value back to the provider profile.
"""

__version__ = "1.0.0"
__author__ = "Employee Sync Team"

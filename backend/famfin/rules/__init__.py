"""
Stateless Australian tax and super rules.

Every function here is pure: no database, no clock unless a date is
omitted by the caller.
"""

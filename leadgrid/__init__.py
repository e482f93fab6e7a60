"""
leadgrid package.

Storage (db.py / schema.py) plus the adaptive discovery grid that decides
where lead searches run next.
"""

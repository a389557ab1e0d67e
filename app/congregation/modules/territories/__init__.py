"""
Territories module.

- Territory records with map boundaries and check-out history
- Distribution of territories across service groups (equal, difficulty, size)
- Division of a territory into lettered sub-territories
- Printable territory cards
"""

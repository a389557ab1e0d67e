"""
Group overseer reports.

- Monthly visit report per field service group with a roster prefilled from field service reports
- Visit schedule per group and month, completed when the report is submitted
"""

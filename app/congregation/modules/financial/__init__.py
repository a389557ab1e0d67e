"""
Financial module.

- Contributions with receipts and expenses with an approval flow
- Monthly opening balances and budgets per category
- Period summaries, monthly reports, twelve-month trends and CSV export
"""

"""
Meeting assignments module.

- Weekly midweek/weekend assignments with assignee and assistant
- Eligibility from member duties
- Best-effort import of the week's program from the published meeting workbook
"""

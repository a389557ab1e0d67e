"""
Meeting attendance.

- Head count per meeting, with midweek/weekend and week of month derived from the date
- Monthly and service-year averages for the congregation meeting attendance record
"""

"""
Cleaning and inventory module.

- Recurring hall cleaning tasks with assignees and due dates
- Supplies inventory with low-stock threshold and restocking
"""

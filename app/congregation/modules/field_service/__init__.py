"""
Field service module.

- Monthly field service reports per member (one per month)
- Service-year bucketing (September through August) for publisher record cards
- Pioneer summary and activity summary reports
"""

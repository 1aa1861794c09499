"""Configuration for ASIN Competitor Insights."""

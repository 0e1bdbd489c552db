"""Buprenorphine Pharmacy Locator — Identity Resolution and Report Aggregation."""

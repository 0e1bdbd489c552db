"""Buprenorphine Pharmacy Locator — Platform API."""

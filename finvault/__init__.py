"""
finvault - Source Package

A local-only personal finance vault. The whole financial document lives
on the user's device, encrypted under a key derived from a PIN.

DESIGN PRINCIPLES:
1. Data at rest is readable only with the PIN
2. Balances are caches that must always replay from the entry log
3. Multi-leg operations are all-or-nothing
4. Failures are reported, never silently corrected
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "finvault contributors"

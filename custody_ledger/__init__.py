"""
Custody Ledger

A bounded custodial ledger: holds a single fungible value unit on behalf of
many principals under a global capacity limit and a per-withdrawal limit,
with guarded, checks-effects-interactions ordered operations.
"""

__version__ = "1.0.0"

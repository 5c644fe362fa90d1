"""
Branch Banking Back Office

Account ledger, debit-card daily limits, overdraft policy and money
movements over flat ``;``-delimited record files. All amounts use Decimal.
"""

__version__ = "1.0.0"

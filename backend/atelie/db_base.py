"""
Declarative base shared by the Ateliê models.

Profiles, subscriptions, pieces and the payment notification ledger all
register here. Keep this module free of model and repository imports so
models/base.py and the repositories can both depend on it.
"""

from sqlalchemy.orm import declarative_base

Base = declarative_base()

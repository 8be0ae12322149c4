"""
Ateliê marketplace backend: ceramista subscriptions, catalog and
Mercado Pago payment reconciliation.
"""

"""Boutique en ligne: panier, checkout Stripe et réconciliation des commandes (FastAPI + Supabase)."""

__version__ = "1.0.0"

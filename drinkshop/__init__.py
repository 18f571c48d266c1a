"""
Backend de la boutique: confirmation de paiement et matérialisation des commandes.
"""

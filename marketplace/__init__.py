"""
Backend marketplace: routage des commandes et paiements partagés (PayPal multiparty).
"""

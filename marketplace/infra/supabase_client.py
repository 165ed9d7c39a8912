"""
Clients Supabase partagés (créés à la demande, un par clé).
- get_supabase: clé anon, utilisée pour l'authentification (auth.get_user)
- get_service_supabase: service role (bypass RLS) pour toutes les écritures serveur:
  commandes, vendeurs, panier, possession, notifications
"""
from typing import Dict
from supabase import create_client, Client
from marketplace import config

_clients: Dict[str, Client] = {}

def _client_for(role: str, key: str) -> Client:
    if not key:
        raise RuntimeError(f"Clé Supabase '{role}' manquante (SUPABASE_URL={bool(config.SUPABASE_URL)})")
    client = _clients.get(role)
    if client is None:
        client = create_client(config.SUPABASE_URL, key)
        _clients[role] = client
    return client

def get_supabase() -> Client:
    return _client_for("anon", config.SUPABASE_ANON_KEY)

def get_service_supabase() -> Client:
    return _client_for("service", config.SUPABASE_SERVICE_KEY)

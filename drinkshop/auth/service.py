from typing import Any, Dict

from .repository import get_user_from_access_token as _repo_get_user_from_token


def get_user_from_token(token: str) -> Dict[str, Any]:
    """
    Utilisateur courant au format applicatif:
    - {id, email, metadata} où metadata = user_metadata Supabase (full_name, phone, address...)
    """
    raw = _repo_get_user_from_token(token) or {}
    return {
        "id": raw.get("id"),
        "email": raw.get("email"),
        "metadata": raw.get("user_metadata") or {},
    }

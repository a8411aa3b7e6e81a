from fastapi import Request, HTTPException, Depends
from typing import Optional, Dict, Any
import logging

from storefront.app_setup.services import Services, get_services

logger = logging.getLogger(__name__)

COOKIE_NAME = "sb_access"

# module storefront.utils.security
def determine_role(email: Optional[str], app_metadata: Optional[Dict[str, Any]], admin_emails) -> str:
    """admin si app_metadata.role == admin ou si l'email figure dans ADMIN_EMAILS."""
    if str((app_metadata or {}).get("role", "")).lower() == "admin":
        return "admin"
    if email and email.lower() in {e.lower() for e in admin_emails or []}:
        return "admin"
    return "user"

def extract_token(request: Request) -> Optional[str]:
    # Hybride: priorité au Bearer, fallback cookie
    token = None
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
    if not token:
        token = request.cookies.get(COOKIE_NAME)
    return token or None

def get_current_user(request: Request, services: Services = Depends(get_services)) -> Dict[str, Any]:
    """
    Identité déjà émise en amont (Supabase Auth): on ne fait que valider le jeton.
    Retour: {"id", "email", "role"}; 401 si absent, invalide ou expiré.
    """
    token = extract_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Non authentifié")
    if services.auth_client is None:
        raise HTTPException(status_code=503, detail="Authentification indisponible")
    try:
        res = services.auth_client.auth.get_user(token)
        user = getattr(res, "user", None)
    except Exception:
        logger.info("security.get_current_user token rejected")
        raise HTTPException(status_code=401, detail="Session expirée, veuillez vous connecter")
    if not user or not getattr(user, "id", None):
        raise HTTPException(status_code=401, detail="Session expirée, veuillez vous connecter")
    email = getattr(user, "email", None)
    return {
        "id": str(user.id),
        "email": email,
        "role": determine_role(email, getattr(user, "app_metadata", None), services.settings.admin_emails),
    }

def require_user(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return user

def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Accès interdit")
    return user

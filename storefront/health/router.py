from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from urllib.parse import urlparse
import socket

from storefront.config import SUPABASE_URL
from storefront.utils.rate_limit import rate_limit_health_info

router = APIRouter(prefix="/health", tags=["Health"])

CHECKED_TABLES = ["products", "product_variants", "cart_items", "orders", "order_items"]

@router.get("")
def health_root():
    return {"ok": True}

def _check_table(client, name: str):
    # diagnostic: l'erreur est rapportée, jamais propagée
    try:
        res = client.table(name).select("*").limit(1).execute()
        return {"ok": True, "rows": len(res.data or [])}
    except Exception as e:
        return {"ok": False, "error": str(e)}

@router.get("/supabase")
def health_supabase(request: Request):
    parsed = urlparse(SUPABASE_URL) if SUPABASE_URL else None
    hostname = parsed.hostname if parsed else None
    dns_ok = None
    dns_error = None
    if hostname:
        try:
            socket.getaddrinfo(hostname, 443)
            dns_ok = True
        except OSError as e:
            dns_ok = False
            dns_error = str(e)

    info = {
        "supabase_url": SUPABASE_URL,
        "hostname": hostname,
        "dns_ok": dns_ok,
        "dns_error": dns_error,
        "connect_ok": False,
        "error": None,
        "tables": {},
    }
    services = getattr(request.app.state, "services", None)
    client = getattr(services, "db", None)
    if client is None:
        info["error"] = "client Supabase non initialisé"
        return JSONResponse(info, status_code=503)
    for t in CHECKED_TABLES:
        info["tables"][t] = _check_table(client, t)
    info["connect_ok"] = all(t["ok"] for t in info["tables"].values())
    return JSONResponse(info, status_code=200 if info["connect_ok"] else 503)

@router.get("/rate-limit")
def health_rate_limit(request: Request):
    return rate_limit_health_info(request)

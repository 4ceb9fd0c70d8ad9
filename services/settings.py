# services/settings.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


def _first(env: Mapping[str, str], *names: str) -> str:
    for n in names:
        v = (env.get(n) or "").strip()
        if v:
            return v
    return ""


@dataclass(frozen=True)
class Settings:
    supabase_url: str = ""
    anon_key: str = ""
    service_key: str = ""
    api_base_url: str = ""
    http_timeout: int = 20
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        try:
            timeout = int(env.get("HTTP_TIMEOUT", "20"))
        except ValueError:
            timeout = 20
        return cls(
            supabase_url=_first(env, "SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL").rstrip("/"),
            anon_key=_first(env, "SUPABASE_ANON_KEY", "SUPABASE_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY"),
            service_key=_first(env, "SUPABASE_SERVICE_ROLE_KEY"),
            api_base_url=_first(env, "API_BASE_URL").rstrip("/"),
            http_timeout=timeout,
            log_level=_first(env, "LOG_LEVEL") or "INFO",
        )

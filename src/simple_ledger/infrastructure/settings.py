from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    supabase_timeout_seconds: float = 15.0

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            data_dir=Path(os.getenv("SIMPLE_LEDGER_DATA_DIR", "data")),
            supabase_url=os.getenv("SUPABASE_URL") or None,
            supabase_anon_key=os.getenv("SUPABASE_ANON_KEY") or None,
            supabase_timeout_seconds=float(os.getenv("SUPABASE_TIMEOUT_SECONDS", "15")),
        )

    @property
    def remote_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)

"""
Gate Audit Logger

Fire-and-forget audit writer for gate and verification decisions.

Every record is appended as one JSON line to the decision log file.
Gate decisions are additionally inserted into the Supabase `clicks`
table when credentials are configured.

Schema:
    clicks (
        timestamp TIMESTAMPTZ DEFAULT now(),
        ip_address TEXT, user_agent TEXT,
        gclid TEXT, clickid TEXT,
        utm_source TEXT, utm_medium TEXT, utm_campaign TEXT,
        utm_term TEXT, utm_content TEXT,
        country TEXT, asn INTEGER, ipqs_score REAL, risk_score INTEGER,
        decision TEXT, redirect_url TEXT, processing_time_ms REAL
    )
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from supabase import create_client, Client

from core.schemas.outputs import ClickAuditEntry, VerificationAuditEntry

logger = logging.getLogger(__name__)


class AuditLogger:
    """
    Writes audit entries to an append-only file and Supabase.

    All writes are best-effort: errors are logged but never raised
    to avoid disrupting the gating decision.
    """

    TABLE_NAME = "clicks"

    def __init__(
        self,
        log_path: Optional[str] = None,
        client: Optional[Client] = None,
    ) -> None:
        self.log_path = Path(log_path) if log_path else None
        self._file_lock = threading.Lock()

        if client is not None:
            self._client: Optional[Client] = client
            return

        url = os.getenv("SUPABASE_URL")
        key = os.getenv("SUPABASE_KEY")
        if not url or not key:
            logger.warning("Supabase credentials missing, database audit logging disabled")
            self._client = None
            return
        self._client = create_client(url, key)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def record_click(self, entry: ClickAuditEntry) -> None:
        """Log one gate decision to the file and the clicks table."""
        record = entry.model_dump()
        self._append(record)

        if self._client is None:
            return

        row = {k: v for k, v in record.items() if k != "timestamp"}
        try:
            self._client.table(self.TABLE_NAME).insert(row).execute()
            logger.debug(f"Click audit inserted for {entry.ip_address}")
        except Exception as e:
            logger.error(f"Database logging error: {e}")

    def record_verification(self, entry: VerificationAuditEntry) -> None:
        """Log one challenge verification to the file."""
        self._append(entry.model_dump(exclude_none=True))

    # ------------------------------------------------------------------
    # File Sink
    # ------------------------------------------------------------------

    def _append(self, record: Dict[str, Any]) -> None:
        if self.log_path is None:
            return

        line = json.dumps(record, default=str) + "\n"
        try:
            with self._file_lock:
                self.log_path.parent.mkdir(parents=True, exist_ok=True)
                with self.log_path.open("a", encoding="utf-8") as f:
                    f.write(line)
        except OSError as e:
            logger.error(f"Decision log write failed ({self.log_path}): {e}")

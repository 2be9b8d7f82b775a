from __future__ import annotations

from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import JSON


# JSONB on Postgres, plain JSON elsewhere (SQLite in tests).
JSON_PAYLOAD = JSON().with_variant(JSONB(), "postgresql")

from __future__ import annotations

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
for p in (REPO_ROOT, REPO_ROOT / "src" / "cadet_roster"):
    if str(p) not in sys.path:
        sys.path.insert(0, str(p))

from cadet_roster.database.connection import DBConfig, DatabaseConnection
from cadet_roster.database.mysql_base import ensure_schema
from cadet_roster.main import load_settings


def main() -> None:
    settings = load_settings()
    db_config = dict(settings.DB_CONFIG)

    ensure_schema(DatabaseConnection(DBConfig.from_mapping(db_config)))
    print(
        "OK: documents table ready -> "
        f"{db_config.get('user')}@{db_config.get('host')}:{db_config.get('port', 3306)}/{db_config.get('database')}"
    )


if __name__ == "__main__":
    main()

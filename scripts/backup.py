"""Export or restore the remote store as a JSON backup.

Usage:
    python scripts/backup.py              # write backups/cadet_roster_<ts>.json
    python scripts/backup.py restore FILE # merge FILE back into the store
"""

from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
for p in (REPO_ROOT, REPO_ROOT / "src" / "cadet_roster"):
    if str(p) not in sys.path:
        sys.path.insert(0, str(p))

from cadet_roster.backup.service import BackupData
from cadet_roster.core.exceptions import ValidationError
from cadet_roster.main import container_from_settings, load_settings, require_remote_backend


def main(argv: list[str]) -> None:
    settings = load_settings()
    try:
        require_remote_backend(settings)
    except ValidationError as e:
        raise SystemExit(f"ERROR: {e}") from e

    container = container_from_settings(settings)
    try:
        if argv[:1] == ["restore"]:
            if len(argv) != 2:
                raise SystemExit("usage: backup.py restore <file.json>")
            backup = BackupData.from_json(Path(argv[1]).read_text(encoding="utf-8"))
            written = container.backup_service.import_database(backup)
            print(f"OK: Restored {sum(written.values())} documents from {argv[1]}")
            return

        out_dir = REPO_ROOT / "backups"
        out_dir.mkdir(parents=True, exist_ok=True)
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        out_file = out_dir / f"cadet_roster_{ts}.json"
        out_file.write_text(container.backup_service.export_database().to_json(), encoding="utf-8")
        print(f"OK: Backup created: {out_file}")
    finally:
        container.close()


if __name__ == "__main__":
    main(sys.argv[1:])

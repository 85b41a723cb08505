"""Load cadets into the remote store.

Usage: python scripts/seed_db.py cadets.json

The file is a JSON list of cadet documents, each with an ``id``.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
for p in (REPO_ROOT, REPO_ROOT / "src" / "cadet_roster"):
    if str(p) not in sys.path:
        sys.path.insert(0, str(p))

from cadet_roster.cadets.model import Cadet
from cadet_roster.core.exceptions import ValidationError
from cadet_roster.main import container_from_settings, load_settings, require_remote_backend


def main(argv: list[str]) -> None:
    settings = load_settings()
    try:
        require_remote_backend(settings)
    except ValidationError as e:
        raise SystemExit(f"ERROR: {e}") from e

    if len(argv) != 1:
        raise SystemExit("usage: seed_db.py <cadets.json>")

    raw = json.loads(Path(argv[0]).read_text(encoding="utf-8"))
    container = container_from_settings(settings)
    try:
        for item in raw:
            item = dict(item)
            container.cadets_repo.save(Cadet.from_document(str(item.pop("id")), item))
    finally:
        container.close()
    print(f"OK: Seeded {len(raw)} cadets")


if __name__ == "__main__":
    main(sys.argv[1:])

from __future__ import annotations

from flask import Flask, jsonify

from ..common.http import json_body
from ..container import Container
from .service import BackupData


def register(app: Flask, container: Container) -> None:
    backups = container.backup_service

    @app.route("/api/backup", methods=["GET"], endpoint="export_backup")
    def export_backup():
        return jsonify(backups.export_database().to_dict())

    @app.route("/api/backup/restore", methods=["POST"], endpoint="restore_backup")
    def restore_backup():
        written = backups.import_database(BackupData.from_dict(json_body()))
        return jsonify({"restored": written})

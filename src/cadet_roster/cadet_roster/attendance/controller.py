from __future__ import annotations

from typing import Mapping

from flask import Flask, jsonify, request

from ..common.http import json_body
from ..common.validators import require_enum, require_non_empty, require_week_start
from ..common.datetime_utils import current_week_start
from ..core.enums import ActivityType, Company
from ..container import Container
from ..reconciliation.service import RosterView
from .model import AttendanceRecord


def _records_json(records: Mapping[str, AttendanceRecord]) -> dict:
    return {cadet_id: r.to_document() for cadet_id, r in records.items()}


def _view_json(view: RosterView) -> dict:
    st = view.state
    return {
        "viewId": view.view_id,
        "company": view.scope.company.value,
        "weekStartDate": view.scope.week_start_date.isoformat(),
        "status": st.status.value,
        "records": _records_json(st.local_working),
        "pendingChanges": {cid: list(slots) for cid, slots in view.pending_changes().items()},
    }


def _week_arg():
    raw = request.args.get("week")
    return require_week_start(raw) if raw else current_week_start()


def register(app: Flask, container: Container) -> None:
    attendance = container.attendance_repo
    views = container.view_service

    @app.route("/api/attendance", methods=["GET"], endpoint="scoped_attendance")
    def scoped_attendance():
        company = require_enum(Company, request.args.get("company", ""), "company")
        week = _week_arg()
        records = attendance.get_scoped_attendance(company, week)
        return jsonify({"company": company.value, "weekStartDate": week.isoformat(), "records": _records_json(records)})

    @app.route("/api/attendance/slot", methods=["POST"], endpoint="update_slot")
    def update_slot():
        data = json_body()
        record = attendance.update_single_slot(
            require_non_empty(data.get("cadetId", ""), "cadetId"),
            data.get("day"),
            data.get("status", "unset"),
            data.get("weekStartDate", ""),
            data.get("activityType", ActivityType.PT.value),
        )
        return jsonify(record.to_document())

    @app.route("/api/attendance/stats", methods=["GET"], endpoint="week_stats")
    def week_stats():
        company = require_enum(Company, request.args.get("company", ""), "company")
        activity = require_enum(ActivityType, request.args.get("activity", ActivityType.PT.value), "activity")
        by_day = attendance.week_stats(company, _week_arg(), activity)
        return jsonify(
            {
                day.value: {"present": s.present, "excused": s.excused, "unexcused": s.unexcused, "total": s.total}
                for day, s in by_day.items()
            }
        )

    @app.route("/api/attendance/clear", methods=["POST"], endpoint="clear_attendance")
    def clear_attendance():
        cleared = attendance.clear_all_attendance()
        return jsonify({"cleared": cleared})

    @app.route("/api/cadets/<cadet_id>/unexcused", methods=["GET"], endpoint="cadet_unexcused")
    def cadet_unexcused(cadet_id: str):
        activity = require_enum(ActivityType, request.args.get("activity", ActivityType.PT.value), "activity")
        dates = attendance.unexcused_dates(cadet_id, activity)
        return jsonify({"cadetId": cadet_id, "activity": activity.value, "count": len(dates), "dates": [d.isoformat() for d in dates]})

    # Roster views: server-held reconciliation state per open grid

    @app.route("/api/views", methods=["POST"], endpoint="open_view")
    def open_view():
        data = json_body()
        view = views.open_view(data.get("company", ""), data.get("weekStartDate") or current_week_start())
        return jsonify(_view_json(view)), 201

    @app.route("/api/views/<view_id>", methods=["GET"], endpoint="get_view")
    def get_view(view_id: str):
        return jsonify(_view_json(views.get(view_id)))

    @app.route("/api/views/<view_id>/slots", methods=["PATCH"], endpoint="edit_view")
    def edit_view(view_id: str):
        data = json_body()
        view = views.get(view_id)
        cadet_id = require_non_empty(data.get("cadetId", ""), "cadetId")
        if data.get("status") is None:
            view.cycle(cadet_id, data.get("day"), data.get("activityType", ActivityType.PT.value))
        else:
            view.edit(cadet_id, data.get("day"), data.get("activityType", ActivityType.PT.value), data["status"])
        return jsonify(_view_json(view))

    @app.route("/api/views/<view_id>/save", methods=["POST"], endpoint="save_view")
    def save_view(view_id: str):
        view = views.get(view_id)
        saved = view.save()
        payload = _view_json(view)
        payload["saved"] = saved
        return jsonify(payload)

    @app.route("/api/views/<view_id>/discard", methods=["POST"], endpoint="discard_view")
    def discard_view(view_id: str):
        view = views.get(view_id)
        view.discard()
        return jsonify(_view_json(view))

    @app.route("/api/views/<view_id>/reload", methods=["POST"], endpoint="reload_view")
    def reload_view(view_id: str):
        view = views.get(view_id)
        view.reload()
        return jsonify(_view_json(view))

    @app.route("/api/views/<view_id>", methods=["DELETE"], endpoint="close_view")
    def close_view(view_id: str):
        views.close_view(view_id)
        return "", 204

# app.py - SurveyDesk
# JSON API for survey definitions, response intake and response exports.

from __future__ import annotations

import io
import logging
import secrets
from typing import Any, Callable

from flask import Flask, jsonify, request, send_file
from werkzeug.exceptions import RequestEntityTooLarge

from db import init_db
import config
import exports as exp
import surveys as srv


APP_NAME = config.APP_NAME
APP_VERSION = config.APP_VERSION
SECRET_KEY = config.SECRET_KEY or secrets.token_urlsafe(32)

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.secret_key = SECRET_KEY
app.config["MAX_CONTENT_LENGTH"] = config.MAX_CONTENT_MB * 1024 * 1024
app.json.sort_keys = False


@app.errorhandler(RequestEntityTooLarge)
def _too_large(e):
    return jsonify({"error": f"Request body exceeds {config.MAX_CONTENT_MB}MB"}), 413


def _send_export(export: exp.ExportFile):
    return send_file(
        io.BytesIO(export.content),
        mimetype=export.mimetype,
        as_attachment=True,
        download_name=export.filename,
    )


def _run_export(survey_id: str, build: Callable[[], exp.ExportFile], failure: str):
    """
    Builds the whole file before anything is sent; a failed export never
    produces a partial download.
    """
    try:
        export = build()
    except exp.SurveyNotFound:
        return jsonify({"error": "Survey not found"}), 404
    except exp.NothingToExport:
        return jsonify({"error": "No responses to export"}), 400
    except Exception as e:
        logger.error("Export failed for survey %s: %s", survey_id, e, exc_info=True)
        return jsonify({"error": failure, "message": str(e)}), 500
    return _send_export(export)


# ---------------------------
# API
# ---------------------------
@app.route("/api/health")
def api_health():
    return jsonify({"service": APP_NAME, "version": APP_VERSION, "status": "ok"})


@app.route("/api/surveys", methods=["GET", "POST"])
def api_surveys():
    if request.method == "POST":
        data = request.get_json(force=True, silent=True) or {}
        survey_id = str(data.get("id") or "").strip()
        title = str(data.get("title") or "").strip()
        definition = data.get("json")
        if not survey_id or not title or not definition:
            return jsonify({"error": "Missing required fields: id, title, and json are required"}), 400
        is_active = data.get("isActive", True)
        if not isinstance(is_active, bool):
            return jsonify({"error": "isActive must be true or false"}), 400
        try:
            survey = srv.create_survey(
                survey_id,
                title,
                definition,
                description=str(data.get("description") or ""),
                is_active=is_active,
            )
        except ValueError as e:
            return jsonify({"error": str(e)}), 409
        logger.info("survey %s created", survey_id)
        return jsonify(survey), 201

    return jsonify(srv.list_surveys())


@app.route("/api/surveys/<survey_id>", methods=["GET"])
def api_survey_one(survey_id: str):
    survey = srv.get_survey(survey_id)
    if not survey:
        return jsonify({"error": "Survey not found"}), 404
    return jsonify(survey)


@app.route("/api/surveys/<survey_id>/responses", methods=["GET", "POST"])
def api_survey_responses(survey_id: str):
    if request.method == "POST":
        data: Any = request.get_json(force=True, silent=True) or {}
        if not isinstance(data, dict) or data.get("data") is None:
            return jsonify({"error": "Response data is required"}), 400
        survey = srv.get_survey(survey_id)
        if not survey:
            return jsonify({"error": "Survey not found"}), 404
        if not survey.get("isActive"):
            return jsonify({"error": "Survey is not active"}), 403
        rid = srv.add_response(
            survey_id,
            data["data"],
            response_id=data.get("responseId"),
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        return jsonify({"message": "Response submitted successfully", "responseId": rid}), 201

    if not srv.get_survey(survey_id):
        return jsonify({"error": "Survey not found"}), 404
    return jsonify(srv.list_responses(survey_id))


# ---------------------------
# Exports
# ---------------------------
@app.route("/api/surveys/<survey_id>/export")
def api_export_xlsx(survey_id: str):
    return _run_export(
        survey_id,
        lambda: exp.export_workbook(survey_id, mode="model"),
        "Failed to export responses",
    )


@app.route("/api/surveys/<survey_id>/export-raw")
def api_export_xlsx_raw(survey_id: str):
    return _run_export(
        survey_id,
        lambda: exp.export_workbook(survey_id, mode="raw"),
        "Failed to export responses (raw)",
    )


@app.route("/api/surveys/<survey_id>/export.csv")
def api_export_csv(survey_id: str):
    return _run_export(
        survey_id,
        lambda: exp.export_responses_csv(survey_id),
        "Failed to export CSV",
    )


@app.route("/api/surveys/<survey_id>/export.json")
def api_export_json(survey_id: str):
    return _run_export(
        survey_id,
        lambda: exp.export_responses_json(survey_id),
        "Failed to export responses",
    )


@app.route("/api/surveys/<survey_id>/summary")
def api_export_summary(survey_id: str):
    return _run_export(
        survey_id,
        lambda: exp.export_summary_report(survey_id),
        "Failed to build summary report",
    )


# ---------------------------
# Boot
# ---------------------------
if __name__ == "__main__":
    init_db()
    app.run(host=config.HOST, port=config.PORT, debug=config.DEBUG)

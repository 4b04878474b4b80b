#!/usr/bin/env python3
"""JSON API for the What Did I Do dashboard.

The desktop UI talks to the core through these routes. Payloads mirror the
dataclasses in ``whatdidido.models``; thumbnails travel as base64 data URIs.

Error contract:
- 400 for malformed input (ValidationError, bad dates, bad base64)
- 404 for unknown ids on single-item routes
- 500 when the database fails; the body carries the error and never a
  zero-filled result, so the UI can show an error state instead of an
  empty chart
"""

import base64
import binascii
import io
from dataclasses import asdict
from datetime import datetime

from flask import Flask, abort, jsonify, request, send_file

from whatdidido.config import ConfigManager, get_config_manager
from whatdidido.errors import StorageError, ValidationError
from whatdidido.export import DataExporter
from whatdidido.logs import get_recent_logs
from whatdidido.models import CATEGORIES, Sample
from whatdidido.stats import ActivityStats, top_categories_per_bucket
from whatdidido.storage import SampleStore
from whatdidido.timeparser import TimeParser


def _day_stats_json(day_stats):
    return {
        "date": day_stats.date,
        "stats": day_stats.percentages,
        "timeInHours": day_stats.hours,
        "counts": day_stats.counts,
        "total": day_stats.total,
        "screenshots": [s.to_dict() for s in day_stats.samples],
    }


def _parse_date_arg(date_string):
    try:
        return datetime.strptime(date_string, '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError("Invalid date format. Use YYYY-MM-DD")


def _int_arg(name, default):
    value = request.args.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"'{name}' must be an integer")


def _float_arg(name):
    value = request.args.get(name)
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        raise ValidationError(f"'{name}' must be a number")


def _json_flag(data, name):
    value = data.get(name, False)
    if not isinstance(value, bool):
        raise ValidationError(f"'{name}' must be true or false")
    return value


def _decode_b64(value, field_name):
    if not value:
        raise ValidationError(f"'{field_name}' is required")
    if not isinstance(value, str):
        raise ValidationError(f"'{field_name}' must be a base64 string")
    if value.startswith("data:"):
        value = value.split(",", 1)[-1]
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError(f"'{field_name}' must be base64 encoded")


def create_app(config_manager: ConfigManager = None, store: SampleStore = None) -> Flask:
    """Build the Flask app around an initialized SampleStore.

    Args:
        config_manager: Configuration source (process-wide one by default).
        store: Store to serve; opened from ``storage.db_path`` if omitted.
    """
    config_manager = config_manager or get_config_manager()
    if store is None:
        store = SampleStore(config_manager.config.storage.db_path)
    store.initialize()

    app = Flask(__name__)
    app.extensions['whatdidido_store'] = store
    app.extensions['whatdidido_config'] = config_manager

    def get_stats():
        return ActivityStats.from_config(store, config_manager.config)

    def get_exporter():
        return DataExporter(store, config_manager.config.storage.export_path)

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        return jsonify({"success": False, "error": str(e)}), 400

    @app.errorhandler(StorageError)
    def handle_storage_error(e):
        app.logger.error(f"Storage failure on {request.path}: {e}")
        return jsonify({"success": False, "error": f"Database error: {e}"}), 500

    # =========================================================================
    # Statistics
    # =========================================================================

    @app.route('/api/status')
    def api_status():
        """Basic health information."""
        return jsonify({
            "success": True,
            "db_path": store.db_path,
            "interval_minutes": config_manager.config.capture.interval_minutes,
            "categories": list(CATEGORIES),
            "recent": [s.to_dict() for s in store.recent(5)],
        })

    @app.route('/api/day/<date_string>')
    def api_day_stats(date_string):
        """Category breakdown and first page of samples for a day."""
        target_date = _parse_date_arg(date_string)
        day_stats = get_stats().get_day_stats(
            target_date,
            interval_minutes=_float_arg('interval'),
            limit=_int_arg('limit', None),
        )
        return jsonify({"success": True, **_day_stats_json(day_stats)})

    @app.route('/api/day/<date_string>/samples')
    def api_more_samples(date_string):
        """Further pages of a day's samples."""
        target_date = _parse_date_arg(date_string)
        samples = get_stats().get_more_samples(
            target_date,
            offset=_int_arg('offset', 0),
            limit=_int_arg('limit', None),
        )
        return jsonify({
            "success": True,
            "date": date_string,
            "screenshots": [s.to_dict() for s in samples],
        })

    @app.route('/api/month/<int:year>/<int:month>')
    def api_monthly_averages(year, month):
        """Monthly category rollup and days with data."""
        if month < 1 or month > 12:
            return jsonify({"success": False, "error": "Month must be between 1 and 12"}), 400
        averages = get_stats().get_monthly_averages(
            f"{year:04d}-{month:02d}-01",
            interval_minutes=_float_arg('interval'),
        )
        return jsonify({
            "success": True,
            "year": averages.year,
            "month": averages.month,
            "monthlyAverages": averages.percentages,
            "monthlyTimeInHours": averages.hours,
            "counts": averages.counts,
            "daysWithData": averages.days_with_data,
        })

    @app.route('/api/month/<int:year>/<int:month>/daily')
    def api_daily_breakdown(year, month):
        """Per-day category hours for the month chart."""
        if month < 1 or month > 12:
            return jsonify({"success": False, "error": "Month must be between 1 and 12"}), 400
        top_n = _int_arg('top', config_manager.config.dashboard.top_categories)
        breakdown = get_stats().get_daily_category_breakdown(
            f"{year:04d}-{month:02d}-01",
            interval_minutes=_float_arg('interval'),
        )
        per_day, legend = top_categories_per_bucket(breakdown, n=top_n)
        return jsonify({
            "success": True,
            "dailyStats": breakdown,
            "topCategories": per_day,
            "legend": legend,
        })

    @app.route('/api/year/<int:year>')
    def api_yearly_breakdown(year):
        """Per-month category hours for the year chart."""
        top_n = _int_arg('top', config_manager.config.dashboard.top_categories)
        yearly = get_stats().get_yearly_category_breakdown(year, interval_minutes=_float_arg('interval'))
        per_month, legend = top_categories_per_bucket(yearly.months, n=top_n)
        return jsonify({
            "success": True,
            "year": yearly.year,
            "months": yearly.months,
            "monthsWithData": yearly.months_with_data,
            "topCategories": per_month,
            "legend": legend,
        })

    # =========================================================================
    # Samples
    # =========================================================================

    @app.route('/api/samples', methods=['POST'])
    def api_save_sample():
        """Store one sample handed over by the capture pipeline.

        Request body:
            {
                "timestamp": "2025-03-04T08:15:00.000Z",
                "category": "WORK",
                "activity": "Code review",
                "image": "<base64>",
                "thumbnail": "<base64>",
                "description": "optional"
            }
        """
        data = request.get_json(silent=True) or {}
        sample = Sample(
            timestamp=data.get('timestamp'),
            category=data.get('category'),
            activity=data.get('activity'),
            image=_decode_b64(data.get('image'), 'image'),
            thumbnail=_decode_b64(data.get('thumbnail'), 'thumbnail'),
            description=data.get('description'),
        )
        sample_id = store.insert(sample)
        return jsonify({"success": True, "id": sample_id}), 201

    @app.route('/api/samples/<int:sample_id>', methods=['DELETE'])
    def api_delete_sample(sample_id):
        """Delete a sample; success is false when the id did not exist."""
        return jsonify({"success": store.delete(sample_id)})

    @app.route('/api/samples/<int:sample_id>/thumbnail')
    def api_sample_thumbnail(sample_id):
        sample = store.get(sample_id)
        if not sample:
            abort(404, "Sample not found")
        return send_file(io.BytesIO(sample.thumbnail), mimetype='image/png')

    @app.route('/api/samples/<int:sample_id>/image')
    def api_sample_image(sample_id):
        sample = store.get(sample_id, include_image=True)
        if not sample:
            abort(404, "Sample not found")
        return send_file(io.BytesIO(sample.image), mimetype='image/png')

    # =========================================================================
    # Export
    # =========================================================================

    @app.route('/api/export', methods=['POST'])
    def api_export():
        """Export a range, either inline or written to a JSON file.

        Request body:
            {
                "startDate": "2025-03-01T00:00:00.000Z",  // or use rangeType
                "endDate": "2025-03-31T23:59:59.999Z",
                "rangeType": "custom",   // today, last7days, last30days, alltime
                "includeMedia": false,
                "includeStats": true,
                "writeFile": false
            }
        """
        data = request.get_json(silent=True) or {}
        range_type = data.get('rangeType', 'custom')
        start, end = data.get('startDate'), data.get('endDate')
        if range_type != 'custom':
            start, end = TimeParser().export_range(range_type)
        elif not start or not end:
            return jsonify({"success": False, "error": "startDate and endDate are required"}), 400

        exporter = get_exporter()
        bundle = exporter.export_range(
            start,
            end,
            include_media=_json_flag(data, 'includeMedia'),
            include_stats=_json_flag(data, 'includeStats'),
        )

        if _json_flag(data, 'writeFile'):
            try:
                path = exporter.write_json(bundle, range_type=range_type)
            except OSError as e:
                return jsonify({"success": False, "error": f"Export failed: {e}"}), 500
            return jsonify({
                "success": True,
                "filePath": str(path),
                "screenshotCount": len(bundle.samples),
            })

        return jsonify({"success": True, **exporter.to_document(bundle, range_type=range_type)})

    # =========================================================================
    # Notes and day analyses
    # =========================================================================

    @app.route('/api/notes/<date_string>')
    def api_notes_for_date(date_string):
        notes = store.get_notes_for_date(_parse_date_arg(date_string))
        return jsonify({"success": True, "notes": [asdict(n) for n in notes]})

    @app.route('/api/notes')
    def api_notes_range():
        start, end = request.args.get('start'), request.args.get('end')
        if not start or not end:
            return jsonify({"success": False, "error": "Both 'start' and 'end' parameters required"}), 400
        notes = store.get_notes_in_range(_parse_date_arg(start), _parse_date_arg(end))
        return jsonify({"success": True, "notes": [asdict(n) for n in notes]})

    @app.route('/api/notes', methods=['POST'])
    def api_save_note():
        data = request.get_json(silent=True) or {}
        if not data.get('date') or not data.get('content'):
            return jsonify({"success": False, "error": "Missing required fields: date, content"}), 400
        note_id = store.save_note(_parse_date_arg(data['date']), data['content'])
        return jsonify({"success": True, "id": note_id}), 201

    @app.route('/api/notes/<int:note_id>', methods=['PATCH'])
    def api_update_note(note_id):
        data = request.get_json(silent=True) or {}
        if not data.get('content'):
            return jsonify({"success": False, "error": "Missing required field: content"}), 400
        return jsonify({"success": store.update_note(note_id, data['content'])})

    @app.route('/api/notes/<int:note_id>', methods=['DELETE'])
    def api_delete_note(note_id):
        return jsonify({"success": store.delete_note(note_id)})

    @app.route('/api/day/<date_string>/analysis')
    def api_get_day_analysis(date_string):
        analysis = store.get_day_analysis(_parse_date_arg(date_string))
        return jsonify({"success": True, "dayAnalysis": asdict(analysis) if analysis else None})

    @app.route('/api/day/<date_string>/analysis', methods=['PUT'])
    def api_save_day_analysis(date_string):
        data = request.get_json(silent=True) or {}
        if not data.get('content'):
            return jsonify({"success": False, "error": "Missing required field: content"}), 400
        analysis_id = store.save_day_analysis(_parse_date_arg(date_string), data['content'])
        return jsonify({"success": True, "id": analysis_id}), 201

    # =========================================================================
    # Settings and logs
    # =========================================================================

    @app.route('/api/config', methods=['GET'])
    def get_config():
        return jsonify(config_manager.to_dict())

    @app.route('/api/config', methods=['PATCH'])
    def update_config():
        """Update one configuration value.

        Request body:
            {"section": "capture", "key": "interval_minutes", "value": 2}
        """
        data = request.get_json(silent=True) or {}
        if not all(k in data for k in ['section', 'key', 'value']):
            return jsonify({"error": "Missing required fields: section, key, value"}), 400

        value = data['value']
        if (data['section'], data['key']) == ('capture', 'interval_minutes'):
            value = ActivityStats._check_interval(value)

        try:
            changed = config_manager.update(data['section'], data['key'], value)
        except OSError as e:
            return jsonify({"error": f"Failed to update config: {e}"}), 500

        restart_keys = {
            'web': ['host', 'port'],
            'storage': ['data_dir', 'db_name'],
        }
        requires_restart = data['key'] in restart_keys.get(data['section'], [])

        return jsonify({
            "success": changed,
            "requires_restart": requires_restart,
            "config": config_manager.to_dict(),
        })

    @app.route('/api/logs')
    def api_recent_logs():
        lines = _int_arg('lines', 1000)
        return jsonify({
            "success": True,
            "logs": get_recent_logs(config_manager.config.storage.log_path, lines=lines),
        })

    return app


if __name__ == '__main__':
    manager = get_config_manager()
    create_app(manager).run(host=manager.config.web.host, port=manager.config.web.port)

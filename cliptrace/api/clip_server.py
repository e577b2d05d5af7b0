# Clip Server - capture, relocation and history endpoints
import logging
from datetime import datetime

from flask import Blueprint, Response, jsonify, request

from cliptrace.locator.models import SelectionAnchor

logger = logging.getLogger(__name__)

clip_bp = Blueprint('clips', __name__)

# Module-level references - set via init_clip_server()
_database_service = None
_capture_service = None
_relocation_service = None
_memory_log_handler = None

LOG_LEVELS = {'DEBUG': 10, 'INFO': 20, 'WARNING': 30, 'ERROR': 40, 'CRITICAL': 50}


def init_clip_server(database_service, capture_service, relocation_service, memory_log_handler=None):
    """Initialize the clip server with required dependencies."""
    global _database_service, _capture_service, _relocation_service, _memory_log_handler
    _database_service = database_service
    _capture_service = capture_service
    _relocation_service = relocation_service
    _memory_log_handler = memory_log_handler


def _json_body():
    return request.get_json(silent=True) or {}


@clip_bp.route('/healthcheck')
def healthcheck():
    return "OK", 200


@clip_bp.route('/api/capture', methods=['POST'])
def capture_clip():
    """Record a copy event. Responds 201 with the record, or 200 with the skip reason."""
    data = _json_body()
    html = data.get('html')
    text = data.get('text')
    if not html or text is None:
        return jsonify({"error": "Missing html or text"}), 400

    try:
        occurrence = int(data.get('occurrence') or 1)
    except (TypeError, ValueError):
        return jsonify({"error": "occurrence must be an integer"}), 400

    try:
        outcome = _capture_service.capture(
            selected_text=text,
            url=data.get('url') or "",
            page_title=data.get('pageTitle') or "",
            html=html,
            occurrence=occurrence,
            timestamp=data.get('timestamp'),
            favicon=data.get('favicon') or "",
            near_password_field=bool(data.get('nearPasswordField')),
        )
    except Exception as e:
        logger.error(f"❌ Capture failed: {e}")
        return jsonify({"error": "Capture failed"}), 500

    if outcome.record is None:
        return jsonify({"skipped": outcome.skipped_reason}), 200
    return jsonify({"record": outcome.record.to_dict()}), 201


@clip_bp.route('/api/relocate', methods=['POST'])
def relocate_clip():
    """Find the clip again in a page snapshot and return the snapshot with the highlight."""
    data = _json_body()
    html = data.get('html')
    if not html:
        return jsonify({"error": "Missing html"}), 400

    try:
        if data.get('id'):
            result = _relocation_service.relocate_clip(html, data['id'])
            if result is None:
                return jsonify({"error": "Clip not found"}), 404
        elif isinstance(data.get('anchor'), dict):
            anchor = SelectionAnchor.from_dict(data['anchor'], original_text=data.get('text'))
            result = _relocation_service.relocate_html(html, anchor)
        else:
            return jsonify({"error": "Missing anchor or id"}), 400
    except Exception as e:
        logger.error(f"❌ Relocation request failed: {e}")
        return jsonify({"error": "Relocation failed"}), 500

    return jsonify(result), 200


@clip_bp.route('/api/history', methods=['GET'])
def get_history():
    query = request.args.get('q', '').strip()
    clips = _database_service.search_history(query) if query else _database_service.get_history()
    return jsonify({"clips": [clip.to_dict() for clip in clips]})


@clip_bp.route('/api/history/<clip_id>', methods=['DELETE'])
def delete_clip(clip_id):
    if not _database_service.delete_clip(clip_id):
        return jsonify({"error": "Clip not found"}), 404
    return jsonify({"deleted": clip_id}), 200


@clip_bp.route('/api/history', methods=['DELETE'])
def clear_history():
    removed = _database_service.clear_all()
    logger.info(f"🗑️ Cleared {removed} clips")
    return jsonify({"deleted": removed}), 200


@clip_bp.route('/api/export', methods=['GET'])
def export_history():
    filename = f"cliptrace-export-{datetime.now().strftime('%Y-%m-%d')}.json"
    return Response(
        _database_service.export_json(),
        mimetype='application/json',
        headers={'Content-Disposition': f'attachment; filename={filename}'},
    )


@clip_bp.route('/api/import', methods=['POST'])
def import_history():
    payload = request.get_data(as_text=True)
    try:
        count = _database_service.import_json(payload)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"imported": count}), 200


@clip_bp.route('/api/logs', methods=['GET'])
def api_logs():
    """Recent in-memory log lines, optionally filtered by minimum level and search term."""
    if _memory_log_handler is None:
        return jsonify({'logs': [], 'timestamp': datetime.now().isoformat()})

    count = min(request.args.get('count', 50, type=int), 500)
    min_level = LOG_LEVELS.get(request.args.get('level', 'DEBUG').upper(), 10)
    search_term = request.args.get('search', '').lower()

    logs = [
        entry for entry in _memory_log_handler.get_recent_logs(count * 2)
        if LOG_LEVELS.get(entry['level'], 20) >= min_level
        and (not search_term or search_term in entry['message'].lower())
    ]
    return jsonify({'logs': logs[-count:], 'timestamp': datetime.now().isoformat()})

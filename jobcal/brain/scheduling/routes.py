from flask import jsonify, request

from jobcal.brain import brain_bp
from jobcal.brain.scheduling.calendar import WorkCalendar
from jobcal.brain.scheduling.projection import day_detail, jobs_by_day, jobs_for_month, month_bounds, queue_view
from jobcal.brain.scheduling.service import SchedulingService
from jobcal.datetime_utils import parse_iso_date, parse_month
from jobcal.exceptions import JobNotFoundError, QueueBusyError, ValidationError
from jobcal.logging_config import get_logger
from jobcal.models import db

logger = get_logger(__name__)


def _error_response(exc, message):
    """Map a service exception to its JSON error response."""
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc)}), 400
    if isinstance(exc, JobNotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, QueueBusyError):
        return jsonify({"error": "Queue is busy, try again", "details": str(exc)}), 409
    logger.error(message, error=str(exc), exc_info=True)
    db.session.rollback()
    return jsonify({
        "error": message,
        "details": str(exc)
    }), 500


def _today_arg():
    """Optional ?today=YYYY-MM-DD override; raises ValidationError when malformed."""
    raw = request.args.get('today')
    if not raw:
        return None
    today = parse_iso_date(raw)
    if today is None:
        raise ValidationError(f"Invalid today: {raw!r}")
    return today


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


@brain_bp.route('/schedule')
def get_schedule():
    """Return every placement and unschedulable job for one pass"""
    try:
        result = SchedulingService().compute_schedule(today=_today_arg())
        return jsonify(result.to_dict()), 200
    except Exception as exc:
        return _error_response(exc, "Failed to compute schedule")


@brain_bp.route('/schedule/queue')
def get_queue():
    """Return sold jobs in queue order with their computed windows"""
    try:
        result = SchedulingService().compute_schedule(today=_today_arg())
        return jsonify({
            "today": result.today.isoformat(),
            "queue": [p.to_dict() for p in queue_view(result)],
            "failures": [f.to_dict() for f in result.failures.values()],
        }), 200
    except Exception as exc:
        return _error_response(exc, "Failed to get queue")


@brain_bp.route('/schedule/month')
def get_month():
    """Return the placements visible in one month plus a per-day index"""
    try:
        today = _today_arg()
        raw_month = request.args.get('month')
        service = SchedulingService()
        result = service.compute_schedule(today=today)

        if raw_month:
            month_start = parse_month(raw_month)
            if month_start is None:
                return jsonify({"error": f"Invalid month: {raw_month!r} (expected YYYY-MM)"}), 400
        else:
            month_start = result.today.replace(day=1)

        first, last = month_bounds(month_start)
        placements = jobs_for_month(result.placements.values(), month_start, result.today)
        by_day = jobs_by_day(placements)
        blocked = WorkCalendar(result.block_outs).blocked_days_index()

        return jsonify({
            "month": first.strftime('%Y-%m'),
            "today": result.today.isoformat(),
            "jobs": [p.to_dict() for p in placements],
            "days": {
                day.isoformat(): [p.job_id for p in on_day]
                for day, on_day in sorted(by_day.items())
                if first <= day <= last
            },
            "blocked_days": {
                day.isoformat(): [b.to_dict() for b in blocks]
                for day, blocks in sorted(blocked.items())
                if first <= day <= last
            },
            "failures": [f.to_dict() for f in result.failures.values()],
        }), 200
    except Exception as exc:
        return _error_response(exc, "Failed to get month schedule")


@brain_bp.route('/schedule/day')
def get_day():
    """Return the placements and block-outs on one date"""
    try:
        raw_day = request.args.get('date')
        day = parse_iso_date(raw_day)
        if day is None:
            return jsonify({"error": "date is required (YYYY-MM-DD)"}), 400

        result = SchedulingService().compute_schedule(today=_today_arg())
        detail = day_detail(day, result.placements.values(), WorkCalendar(result.block_outs))
        return jsonify({
            "date": day.isoformat(),
            "placements": [p.to_dict() for p in detail['placements']],
            "block_outs": [b.to_dict() for b in detail['block_outs']],
            "is_blocked": detail['is_blocked'],
        }), 200
    except Exception as exc:
        return _error_response(exc, "Failed to get day schedule")


@brain_bp.route('/schedule/queue/backfill', methods=['POST'])
def backfill_queue_ranks():
    """Assign ranks to sold jobs that have none"""
    try:
        mutation = SchedulingService().backfill_ranks(today=_today_arg())
        return jsonify(mutation.to_dict()), 200
    except Exception as exc:
        return _error_response(exc, "Failed to backfill queue ranks")


@brain_bp.route('/schedule/queue/move', methods=['POST'])
def move_queue():
    """Move a sold job one slot up (-1) or down (+1)"""
    try:
        data = _json_body()
        job_id = data.get('job_id')
        if not job_id:
            return jsonify({"error": "job_id is required"}), 400

        mutation = SchedulingService().move_queue(str(job_id), data.get('direction'), today=_today_arg())
        return jsonify(mutation.to_dict()), 200
    except Exception as exc:
        return _error_response(exc, "Failed to move job")


@brain_bp.route('/schedule/queue/position', methods=['POST'])
def move_queue_position():
    """Move a sold job to an absolute 1-based queue position"""
    try:
        data = _json_body()
        job_id = data.get('job_id')
        if not job_id:
            return jsonify({"error": "job_id is required"}), 400

        mutation = SchedulingService().move_to_position(str(job_id), data.get('position'), today=_today_arg())
        return jsonify(mutation.to_dict()), 200
    except Exception as exc:
        return _error_response(exc, "Failed to move job")


@brain_bp.route('/schedule/jobs/<job_id>/hold', methods=['PUT'])
def update_hold_date(job_id):
    """Set or clear (null) a job's hold date"""
    try:
        data = _json_body()
        if 'hold_date' not in data:
            return jsonify({"error": "hold_date is required (use null to clear)"}), 400

        mutation = SchedulingService().set_hold_date(job_id, data.get('hold_date'), today=_today_arg())
        return jsonify(mutation.to_dict()), 200
    except Exception as exc:
        return _error_response(exc, "Failed to update hold date")


@brain_bp.route('/schedule/jobs/<job_id>/weekend', methods=['PUT'])
def toggle_weekend(job_id):
    """Toggle a job's Saturday or Sunday permission"""
    try:
        data = _json_body()
        mutation = SchedulingService().toggle_weekend(job_id, data.get('day'), today=_today_arg())
        return jsonify(mutation.to_dict()), 200
    except Exception as exc:
        return _error_response(exc, "Failed to toggle weekend permission")


@brain_bp.route('/schedule/jobs/<job_id>/labor-days', methods=['PUT'])
def adjust_labor_days(job_id):
    """Step a job's labor estimate by a whole number of days"""
    try:
        data = _json_body()
        mutation = SchedulingService().adjust_labor_days(job_id, data.get('delta'), today=_today_arg())
        return jsonify(mutation.to_dict()), 200
    except Exception as exc:
        return _error_response(exc, "Failed to adjust labor days")


@brain_bp.route('/schedule/jobs/<job_id>/labor-days/reset', methods=['POST'])
def reset_labor_days(job_id):
    """Restore a job's labor estimate from before its first adjustment"""
    try:
        mutation = SchedulingService().reset_labor_days(job_id, today=_today_arg())
        return jsonify(mutation.to_dict()), 200
    except Exception as exc:
        return _error_response(exc, "Failed to reset labor days")


@brain_bp.route('/block-outs')
def list_block_outs():
    """Return all block-outs ordered by start date"""
    try:
        blocks = SchedulingService.list_block_outs()
        return jsonify({
            "block_outs": [block.to_dict() for block in blocks]
        }), 200
    except Exception as exc:
        return _error_response(exc, "Failed to get block-outs")


@brain_bp.route('/block-outs', methods=['POST'])
def create_block_out():
    """Create a block-out; end_date defaults to start_date"""
    try:
        data = _json_body()
        if not data.get('start_date'):
            return jsonify({"error": "start_date is required"}), 400

        mutation = SchedulingService().create_block_out(
            data.get('start_date'),
            end_date=data.get('end_date'),
            description=data.get('description'),
            today=_today_arg(),
        )
        return jsonify(mutation.to_dict()), 201
    except Exception as exc:
        return _error_response(exc, "Failed to create block-out")


@brain_bp.route('/block-outs/<block_out_id>', methods=['DELETE'])
def delete_block_out(block_out_id):
    """Delete a block-out"""
    try:
        mutation = SchedulingService().delete_block_out(block_out_id, today=_today_arg())
        return jsonify(mutation.to_dict()), 200
    except Exception as exc:
        return _error_response(exc, "Failed to delete block-out")

"""
Flask route handlers for the REST API.
"""

import asyncio
import sys
import traceback
from dataclasses import fields
from datetime import datetime

from flask import Response, jsonify, request

from fieldops.analysis import SERIES_BUCKETS, apply_filters, compute_statistics, records_frame
from fieldops.config import COLLECTION_ENTITIES, DEFAULT_TOP_N, MAX_RESULTS_RETURN, PROGRAMME_FIELD
from fieldops.dates import to_date
from fieldops.metrics import RECORD_ENTITIES
from fieldops.models import DateRange, Filters, PricingConfig, record_to_dict
from fieldops.pricing import load_pricing, pricing_to_dict, save_pricing
from fieldops.rbac import ActorSession
from fieldops.service import create_record, delete_record, load_collection, update_record
from fieldops.store import StoreError
from fieldops.api.auth import token_required

# Query parameters that are not category filters.
RESERVED_PARAMS = {"start", "end", "search", "bucket", "top", "anchor_year", "limit", "token"}


def _date_range_from_args(args) -> DateRange:
    bounds = {}
    for name in ("start", "end"):
        raw = args.get(name, "").strip()
        if not raw:
            bounds[name] = None
            continue
        parsed = to_date(raw)
        if parsed is None:
            raise ValueError(f"Could not parse {name} date '{raw}'")
        bounds[name] = parsed
    return DateRange(**bounds)


ENTITY_RECORDS = {entity: cls for cls, entity in RECORD_ENTITIES.items()}


def _filters_from_args(args, entity: str) -> Filters:
    """Non-reserved params are equality filters on the entity's canonical fields."""
    allowed = {f.name for f in fields(ENTITY_RECORDS[entity])}
    equals = {}
    for key, value in args.items():
        if key in RESERVED_PARAMS or value == "":
            continue
        if key not in allowed:
            raise ValueError(f"Unknown filter field '{key}'")
        equals[key] = value
    return Filters(search=args.get("search", ""), equals=equals)


def _int_arg(args, name: str, default: int) -> int:
    raw = args.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer") from None


def _scope_payload(scope):
    return {"unrestricted": scope.unrestricted, "programmes": sorted(scope.programmes)}


def register_routes(app, store, cache, state_file=None):
    """Register all API routes on the Flask *app*."""

    def current_session() -> ActorSession:
        session = ActorSession(store, request.user_id)
        asyncio.run(session.reload())
        return session

    def scoped_or_error(name):
        """(session, None) when the collection is known and readable, else (None, response)."""
        if name not in COLLECTION_ENTITIES:
            return None, (jsonify({"error": f"Unknown collection '{name}'"}), 404)
        session = current_session()
        if session.scope.is_empty:
            return None, (jsonify({"error": "no programme access"}), 403)
        return session, None

    # ── Health / info ────────────────────────────────────────────────

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "Field Operations Data API",
            "version": "1.0.0",
            "status": "running",
            "collections": sorted(COLLECTION_ENTITIES),
            "endpoints": {
                "me": "/api/me",
                "collection": "/api/collections/<name>",
                "statistics": "/api/collections/<name>/statistics",
                "export": "/api/collections/<name>/export",
                "pricing": "/api/pricing",
                "health": "/health",
            },
        })

    @app.route("/health", methods=["GET"])
    def health():
        checks = {"store": False}
        try:
            asyncio.run(store.read("users/__health__"))
            checks["store"] = True
        except StoreError as e:
            print(f"[WARN] Store health check failed: {e}", file=sys.stderr)

        all_healthy = all(checks.values())
        return jsonify({
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
            "cache_entries": len(cache),
        }), 200 if all_healthy else 503

    # ── Actor ────────────────────────────────────────────────────────

    @app.route("/api/me", methods=["GET"])
    @token_required
    def me():
        session = current_session()
        profile = session.profile
        return jsonify({
            "success": True,
            "user": {
                "id": request.user_id,
                "role": profile.role if profile else None,
                "programme_flags": profile.programme_flags if profile else {},
            },
            "scope": _scope_payload(session.scope),
        }), 200

    # ── Collections ──────────────────────────────────────────────────

    @app.route("/api/collections/<name>", methods=["GET"])
    @token_required
    def list_records(name):
        session, error = scoped_or_error(name)
        if error:
            return error
        try:
            date_range = _date_range_from_args(request.args)
            filters = _filters_from_args(request.args, COLLECTION_ENTITIES[name])
            limit = min(_int_arg(request.args, "limit", MAX_RESULTS_RETURN), MAX_RESULTS_RETURN)
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        state = asyncio.run(load_collection(store, name, session.scope, cache))
        records = apply_filters(state.records, date_range, filters)
        return jsonify({
            "success": state.error is None,
            "collection": name,
            "scope": _scope_payload(session.scope),
            "row_count": len(records),
            "records": [record_to_dict(r) for r in records[:limit]],
            "truncated": len(records) > limit,
            "is_stale": state.is_stale,
            "incomplete": state.incomplete,
            "error": state.error,
        }), 200

    @app.route("/api/collections/<name>/statistics", methods=["GET"])
    @token_required
    def collection_statistics(name):
        session, error = scoped_or_error(name)
        if error:
            return error
        start_time = datetime.now()
        try:
            date_range = _date_range_from_args(request.args)
            filters = _filters_from_args(request.args, COLLECTION_ENTITIES[name])
            bucket = request.args.get("bucket", "month")
            if bucket not in SERIES_BUCKETS:
                raise ValueError(f"bucket must be one of {', '.join(SERIES_BUCKETS)}")
            top_n = _int_arg(request.args, "top", DEFAULT_TOP_N)
            anchor_year = _int_arg(request.args, "anchor_year", 0) or None
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        try:
            state = asyncio.run(load_collection(store, name, session.scope, cache))
            result = compute_statistics(
                state.records, date_range, filters, load_pricing(state_file),
                entity=COLLECTION_ENTITIES[name],
                bucket=bucket,
                top_n=top_n,
                anchor_year=anchor_year,
            )
            execution_time = (datetime.now() - start_time).total_seconds() * 1000
            return jsonify({
                "success": state.error is None,
                "collection": name,
                "statistics": result.to_dict(),
                "is_stale": state.is_stale,
                "incomplete": state.incomplete,
                "error": state.error,
                "execution_time_ms": round(execution_time, 2),
            }), 200
        except Exception as e:
            print(f"[ERROR] Statistics error: {e}", file=sys.stderr)
            traceback.print_exc()
            return jsonify({"success": False, "error": "Statistics failed", "details": str(e)}), 500

    @app.route("/api/collections/<name>/export", methods=["GET"])
    @token_required
    def export_records(name):
        session, error = scoped_or_error(name)
        if error:
            return error
        try:
            date_range = _date_range_from_args(request.args)
            filters = _filters_from_args(request.args, COLLECTION_ENTITIES[name])
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        state = asyncio.run(load_collection(store, name, session.scope, cache))
        frame = records_frame(apply_filters(state.records, date_range, filters))
        return Response(
            frame.to_csv(index=False),
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={name}.csv"},
        )

    @app.route("/api/collections/<name>", methods=["POST"])
    @token_required
    def create(name):
        session, error = scoped_or_error(name)
        if error:
            return error
        if not request.is_json or not isinstance(request.json, dict):
            return jsonify({"error": "Body must be a JSON object"}), 400

        data = dict(request.json)
        programme = data.get(PROGRAMME_FIELD)
        if not programme and len(session.scope.programmes) == 1:
            programme = next(iter(session.scope.programmes))
            data[PROGRAMME_FIELD] = programme
        if not programme:
            return jsonify({"error": f"{PROGRAMME_FIELD} is required"}), 400
        if not session.scope.allows(programme):
            return jsonify({"error": f"no access to programme '{programme}'"}), 403

        try:
            key = asyncio.run(create_record(store, name, data, cache))
        except StoreError as e:
            print(f"[ERROR] Create failed: {e}", file=sys.stderr)
            return jsonify({"success": False, "error": str(e)}), 502
        return jsonify({"success": True, "id": key}), 201

    def _existing_or_error(name, record_id, session):
        try:
            existing = asyncio.run(store.read(f"{name}/{record_id}"))
        except StoreError as e:
            return jsonify({"success": False, "error": str(e)}), 502
        if not isinstance(existing, dict):
            return jsonify({"error": "Record not found"}), 404
        if not session.scope.allows(existing.get(PROGRAMME_FIELD)):
            return jsonify({"error": "no access to this record"}), 403
        return None

    @app.route("/api/collections/<name>/<record_id>", methods=["PATCH"])
    @token_required
    def update(name, record_id):
        session, error = scoped_or_error(name)
        if error:
            return error
        if not request.is_json or not isinstance(request.json, dict):
            return jsonify({"error": "Body must be a JSON object"}), 400
        error = _existing_or_error(name, record_id, session)
        if error:
            return error

        values = dict(request.json)
        if PROGRAMME_FIELD in values and not session.scope.allows(values[PROGRAMME_FIELD]):
            return jsonify({"error": f"no access to programme '{values[PROGRAMME_FIELD]}'"}), 403
        try:
            asyncio.run(update_record(store, name, record_id, values, cache))
        except StoreError as e:
            print(f"[ERROR] Update failed: {e}", file=sys.stderr)
            return jsonify({"success": False, "error": str(e)}), 502
        return jsonify({"success": True, "id": record_id}), 200

    @app.route("/api/collections/<name>/<record_id>", methods=["DELETE"])
    @token_required
    def delete(name, record_id):
        session, error = scoped_or_error(name)
        if error:
            return error
        error = _existing_or_error(name, record_id, session)
        if error:
            return error
        try:
            asyncio.run(delete_record(store, name, record_id, cache))
        except StoreError as e:
            print(f"[ERROR] Delete failed: {e}", file=sys.stderr)
            return jsonify({"success": False, "error": str(e)}), 502
        return jsonify({"success": True, "id": record_id}), 200

    # ── Pricing inputs ───────────────────────────────────────────────

    @app.route("/api/pricing", methods=["GET"])
    @token_required
    def get_pricing():
        return jsonify({"success": True, "pricing": pricing_to_dict(load_pricing(state_file))}), 200

    @app.route("/api/pricing", methods=["PUT"])
    @token_required
    def put_pricing():
        if not request.is_json or not isinstance(request.json, dict):
            return jsonify({"error": "Body must be a JSON object"}), 400
        current = load_pricing(state_file)
        data = request.json
        try:
            pricing = PricingConfig(
                unit_price=float(data.get("pricePerKg", current.unit_price)),
                expenses=float(data.get("expenses", current.expenses)),
            )
        except (TypeError, ValueError):
            return jsonify({"error": "pricePerKg and expenses must be numbers"}), 400
        stored = save_pricing(pricing, state_file)
        return jsonify({"success": True, "pricing": pricing_to_dict(stored)}), 200

    # ── Error handlers ───────────────────────────────────────────────

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Endpoint not found", "message": str(e)}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed", "message": str(e)}), 405

    @app.errorhandler(500)
    def internal_error(e):
        return jsonify({"error": "Internal server error", "message": str(e)}), 500

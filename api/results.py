"""
Result, category and upload endpoints.
"""
from flask import Blueprint, current_app, jsonify, request

from auth.decorators import require_auth
from processing.normalizer import normalize_time

results_bp = Blueprint("results", __name__)


def _component(name):
    return current_app.extensions[name]


def _body() -> dict:
    return request.get_json(silent=True) or {}


def _ok(message: str, status: int = 1, **extra):
    return jsonify({"baseResponse": {"message": message, "status": status}, **extra})


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Writes
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _create_result():
    """
    Accepts JSON:
      {categoryname, date, time, number, next_time?, next_result?, key?, mode?}
    With next_time, next_result is the number drawn at that slot.  Without
    it, a next_result that reads as a time is taken as the next slot.
    """
    body = _body()
    next_time = body.get("next_time")
    next_number = body.get("next_result")
    if not next_time and normalize_time(next_number):
        next_time, next_number = next_number, None

    outcome = _component("upsert_engine").upsert_reading(
        categoryname=body.get("categoryname"),
        date=body.get("date"),
        time=body.get("time"),
        number=body.get("number"),
        next_time=next_time,
        next_number=next_number,
        key=body.get("key"),
        mode=body.get("mode"),
        next_result=body.get("next_result"),
    )
    if outcome.is_duplicate:
        return jsonify({
            "message": "Duplicate time(s) detected",
            "duplicates": outcome.duplicates,
        })
    return jsonify({"message": "Result saved successfully", "data": outcome.document})


@results_bp.route("/result", methods=["POST"])
@require_auth
def create_result():
    return _create_result()


@results_bp.route("/result-with-authcode", methods=["POST"])
def create_result_without_auth():
    """Same upsert, used by the auto-submit scheduler."""
    return _create_result()


@results_bp.route("/update-existing-result/<_id>", methods=["PUT"])
@require_auth
def update_result(_id):
    body = _body()
    doc = _component("upsert_engine").update_time_entry(
        _id, body.get("date"), body.get("time"), body.get("number"),
        next_result=body.get("next_result"),
    )
    return jsonify({"message": "Result updated successfully", "data": doc})


@results_bp.route("/delete-existing-result/<id>", methods=["PATCH"])
@require_auth
def delete_time_entry(id):
    body = _body()
    doc = _component("upsert_engine").delete_time_entry(id, body.get("date"), body.get("time"))
    return jsonify({"message": "Time entry deleted successfully", "updated": doc})


_UPLOAD_REQUIRED = ("categoryname", "date", "time", "result", "number", "next_result")

_UPLOAD_MESSAGES = {
    "created": ("New category created and result added.", 201),
    "updated": ("Existing result updated.", 200),
    "appended": ("New result added to existing category.", 200),
}


@results_bp.route("/upload-data", methods=["POST"])
def upload_data():
    """Scraper upload into the flat result documents."""
    body = _body()
    if any(not body.get(field) for field in _UPLOAD_REQUIRED):
        return jsonify({"message": "Missing required fields."}), 400

    doc, status = _component("upsert_engine").upload_flat_reading(
        body["categoryname"], body["date"], body["time"], body["number"],
        mode=body.get("mode"),
    )
    message, code = _UPLOAD_MESSAGES[status]
    return jsonify({"message": message, "data": doc}), code


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Reads
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@results_bp.route("/fetch-result")
@require_auth
def fetch_today():
    data = _component("query_engine").fetch_today()
    return jsonify({"message": "Results fetched successfully", "data": data})


@results_bp.route("/fetch-result-direct")
def fetch_current_month():
    payload, from_cache = _component("query_engine").fetch_month()
    message = (
        "Results fetched successfully (from cache)" if from_cache
        else "Results fetched successfully (current month only)"
    )
    return jsonify({"message": message, "data": payload["data"]})


@results_bp.route("/fetch-result-by-date/<date>/<categoryname>")
@results_bp.route("/fetch-result-by-date/<date>/<categoryname>/<mode>")
def fetch_by_date(date, categoryname, mode=None):
    mode = mode or request.args.get("mode")
    data = _component("query_engine").fetch_by_date(categoryname, date, mode)
    return _ok("Fetch all", data=data)


@results_bp.route("/fetch-results-by-month/<selectedDate>/<categoryname>/<mode>")
@require_auth
def fetch_by_month(selectedDate, categoryname, mode):
    payload, _ = _component("query_engine").fetch_month(
        categoryname=categoryname, mode=mode, selected_date=selectedDate,
    )
    return _ok("Results fetched successfully", **payload)


@results_bp.route("/result/<id>")
@require_auth
def fetch_by_id(id):
    doc = _component("query_engine").fetch_by_id(id)
    return _ok("STATUS_OK", response=doc)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Categories
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@results_bp.route("/add-key-for-result-updation", methods=["POST"])
@require_auth
def add_key():
    body = _body()
    outcome = _component("category_registry").register_key(body.get("key"), body.get("categoryname"))
    if not outcome.created:
        return _ok("Key or Category already exists", status=0)
    return _ok("Key Added successfully", response=outcome.document)


@results_bp.route("/fetch-cate-result")
@require_auth
def fetch_categories():
    return _ok("Fetch all", data=_component("category_registry").list_categories())


@results_bp.route("/fetch-category-direct")
def fetch_categories_without_auth():
    return _ok("Fetch all", data=_component("category_registry").list_categories())

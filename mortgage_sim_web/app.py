import io
import logging
import os

from flask import Flask, Response, jsonify, request

from mortgage_sim.config import config_from_dict, config_to_dict, default_config, validate_config
from mortgage_sim.engine import run_simulation
from mortgage_sim.main import serialize_record, serialize_summary, write_ledger_csv

app = Flask(__name__)
app.config["LEDGER_PREVIEW_ROWS"] = int(os.environ.get("LEDGER_PREVIEW_ROWS", "120"))

logger = logging.getLogger(__name__)


def _request_to_config():
    """Build a validated configuration from the JSON body (partial overrides allowed)."""
    data = request.get_json(force=True) if request.data else {}
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return validate_config(config_from_dict(data))


def _ledger_for_view(ledger: list, show_full_ledger: bool):
    if show_full_ledger:
        return ledger, 0
    limit = app.config["LEDGER_PREVIEW_ROWS"]
    preview = ledger[:limit]
    return preview, len(ledger) - len(preview)


@app.errorhandler(ValueError)
def handle_value_error(exc):
    # ConfigError is a ValueError, so bad configurations land here too.
    logger.info("Rejected simulation request: %s", exc)
    return jsonify({"error": str(exc)}), 400


@app.errorhandler(TypeError)
def handle_type_error(exc):
    logger.info("Rejected simulation request: %s", exc)
    return jsonify({"error": f"Malformed configuration: {exc}"}), 400


@app.get("/api/defaults")
def defaults():
    return jsonify(config_to_dict(default_config()))


@app.post("/api/simulate")
def simulate():
    config = _request_to_config()
    records, summary = run_simulation(config)
    ledger = [serialize_record(r) for r in records]
    ledger, truncated = _ledger_for_view(ledger, request.args.get("full") == "1")
    return jsonify(
        {
            "summary": serialize_summary(summary),
            "ledger": ledger,
            "truncated": truncated,
        }
    )


@app.post("/api/export.csv")
def export_csv():
    config = _request_to_config()
    records, _ = run_simulation(config)
    buffer = io.StringIO()
    write_ledger_csv(buffer, records)
    return Response(
        buffer.getvalue(),
        mimetype="text/csv",
        headers={"Content-Disposition": "attachment; filename=mortgage_simulation.csv"},
    )


if __name__ == "__main__":
    print("Starting mortgage simulator API...")
    app.run(host="0.0.0.0", port=8710, debug=True)

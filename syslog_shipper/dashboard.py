"""Flask monitoring endpoints for the shipping pipeline."""

from flask import Flask, jsonify

from syslog_shipper.metrics import PipelineMetrics


def create_dashboard_app(metrics: PipelineMetrics, is_alive=None) -> Flask:
    """Build the app. *is_alive* returns a name -> bool map of the pipeline threads."""
    app = Flask(__name__)

    @app.route("/stats")
    def stats():
        return jsonify(metrics.snapshot())

    @app.route("/health")
    def health():
        threads = is_alive() if is_alive else {}
        if all(threads.values()):
            return jsonify(status="ok", threads=threads)
        return jsonify(status="degraded", threads=threads), 503

    return app


def run_dashboard(app: Flask, port: int):
    """Run the Flask app (intended for use in a daemon thread)."""
    app.run(host="0.0.0.0", port=port, use_reloader=False)

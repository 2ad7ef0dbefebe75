import atexit
import logging
import os
import uuid
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask, jsonify, request

from gateway_analyzer.config import Config
from gateway_analyzer.job_store import InMemoryJobStore
from gateway_analyzer.llm_client import WorkersAIClient
from gateway_analyzer.narrative import NarrativeGenerator
from gateway_analyzer.pipeline import AnalysisPipeline

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def build_pipeline(config):
    """Wire the pipeline, narrator and job store from config."""
    store = InMemoryJobStore(
        ttl_seconds=config["storage"]["ttl_seconds"],
        max_jobs=config["storage"]["max_jobs"],
    )
    narrative_config = config["narrative"]
    narrator = NarrativeGenerator.from_config(
        narrative_config, client=WorkersAIClient.from_config(narrative_config)
    )
    return AnalysisPipeline(
        narrator=narrator,
        store=store,
        burst_window_seconds=config["detection"]["burst_window_seconds"],
        max_findings=config["detection"]["max_findings"],
    )


def create_app(config=None, pipeline=None, start_scheduler=True):
    """Flask application factory."""
    app = Flask(__name__)

    if config is None:
        config = Config(os.environ.get("CONFIG_PATH", "config.yaml"))
    if pipeline is None:
        pipeline = build_pipeline(config)
        atexit.register(pipeline.close)

    max_upload = config["upload"]["max_bytes"]

    # Store components on app for access in tests
    app.config["components"] = {
        "config": config,
        "pipeline": pipeline,
        "store": pipeline.store,
    }

    store = pipeline.store
    if start_scheduler and isinstance(store, InMemoryJobStore):
        scheduler = BackgroundScheduler()
        scheduler.add_job(
            store.purge_expired, "interval",
            seconds=config["storage"]["purge_interval_seconds"],
        )
        scheduler.start()
        atexit.register(scheduler.shutdown)

    # --- Routes ---

    @app.route("/api/health")
    def health():
        return jsonify({
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": VERSION,
        })

    @app.route("/api/upload", methods=["POST"])
    def upload():
        file = request.files.get("file")
        if file is None:
            return jsonify({"error": "No file provided"}), 400

        data = file.read(max_upload + 1)
        if len(data) > max_upload:
            limit_mb = max_upload // (1024 * 1024)
            return jsonify({"error": f"File too large. Max {limit_mb}MB for sync processing"}), 413

        job_id = str(uuid.uuid4())
        logger.info("Upload %s: %s (%d bytes)", job_id, file.filename, len(data))
        try:
            result = pipeline.run(data, job_id)
        except Exception as e:
            return jsonify({
                "error": "Failed to process log file",
                "details": str(e) or type(e).__name__,
            }), 500

        return jsonify(result.to_dict())

    @app.route("/api/jobs/<job_id>")
    def get_job(job_id):
        result = pipeline.get_result(job_id)
        if result is None:
            return jsonify({"error": "Job not found"}), 404
        return jsonify(result.to_dict())

    @app.route("/")
    def index():
        return "Gateway Log Analyzer API - Use /api/upload to analyze logs", 200, {
            "Content-Type": "text/plain; charset=utf-8",
        }

    return app


# For gunicorn: `gunicorn 'gateway_analyzer.app:create_app()'`
if __name__ == "__main__":
    cfg = Config(os.environ.get("CONFIG_PATH", "config.yaml"))
    create_app(cfg).run(
        host=cfg["server"]["host"], port=cfg["server"]["port"], debug=cfg["server"]["debug"]
    )

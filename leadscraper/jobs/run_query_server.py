"""HTTP entrypoint that triggers Maps scrape jobs."""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict

from flask import Flask, jsonify, request

from leadscraper.core.config import get_settings
from leadscraper.jobs.run_query import build_query, run_query_job

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & executor ----------
app = Flask(__name__)
_executor = ThreadPoolExecutor(max_workers=2)

# ---------- Routes ----------


@app.get("/")
def root() -> Any:
    """Simple root to avoid 404 on GET /"""
    return "ok", 200


@app.get("/healthz")
def healthcheck() -> Any:
    """Lightweight health endpoint; reads settings only, never touches the database."""
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "worker_port_config": getattr(settings, "worker_port", None),
                "storage": "postgres" if settings.database_url else "csv",
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


@app.post("/scrape")
def enqueue_scrape() -> Any:
    """
    Enqueue a Maps scraping job.
    JSON body: either "query", or all of type_business, city, country.
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}

    raw_query = payload.get("query")
    if raw_query is not None and not isinstance(raw_query, str):
        return jsonify({"error": "query must be a string"}), 400

    if not (raw_query or "").strip():
        required = ("type_business", "city", "country")
        missing = [f for f in required if not str(payload.get(f) or "").strip()]
        if missing:
            return jsonify({"error": f"missing fields: query or {', '.join(missing)}"}), 400

    query = build_query(
        raw_query,
        str(payload.get("type_business") or ""),
        str(payload.get("city") or ""),
        str(payload.get("country") or ""),
    )

    job_args = dict(query=query)
    logger.info("Queueing Maps scrape job: %s", job_args)
    _executor.submit(_run_job_safe, job_args)

    return jsonify({"data": {"status": "queued", "query": query}}), 202


# ---------- Internals ----------


def _run_job_safe(job_args: Dict[str, Any]) -> None:
    try:
        run_query_job(**job_args)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Scrape job failed: %s", exc)


def main() -> None:
    """Bind to PORT when the platform injects one, otherwise WORKER_PORT."""
    env_port = os.getenv("PORT")
    logger.info("[BOOT] ENV PORT=%s", env_port)

    port = int(env_port or get_settings().worker_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)

    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()

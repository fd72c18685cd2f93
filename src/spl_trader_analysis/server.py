"""
HTTP boundary for the analysis pipeline.
"""

from typing import Any, Callable, Dict, Optional, Tuple
import logging

from flask import Flask, request, jsonify

from .analysis import run_analysis
from .api_clients import HeliusClient, TransactionSource
from .config import Config
from .exceptions import ValidationError
from .models import AnalysisRequest

logger = logging.getLogger(__name__)

FAILURE_MESSAGE = "Failed to fetch or analyze data."


def handle_analyze_request(method: str, payload: Any, source: TransactionSource,
                           config: Optional[Config] = None) -> Tuple[int, Any]:
    """Run one analysis request and return (status, JSON body)."""
    if method.upper() != "POST":
        return 405, {"error": "Method Not Allowed"}

    try:
        analysis_request = AnalysisRequest.from_payload(payload or {}, config)
    except ValidationError as e:
        return 400, {"error": str(e)}

    page_size = config.page_size if config else 100
    try:
        rows = run_analysis(source, analysis_request, page_size)
    except Exception as e:
        logger.exception(f"Error analyzing {analysis_request.token_address}: {e}")
        return 500, {"error": FAILURE_MESSAGE, "details": str(e)}

    return 200, [row.to_dict() for row in rows]


def create_app(config: Optional[Config] = None,
               source_factory: Optional[Callable[[], TransactionSource]] = None) -> Flask:
    """Create the Flask app serving POST /api/analyze."""
    app = Flask(__name__)

    if source_factory is None:
        if config is None:
            config = Config.from_env()

        def source_factory() -> TransactionSource:
            return HeliusClient(config)

    @app.route("/api/analyze", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
    def analyze():
        payload: Dict[str, Any] = request.get_json(silent=True) or {}
        status, body = handle_analyze_request(
            request.method, payload, source_factory(), config)
        return jsonify(body), status

    return app

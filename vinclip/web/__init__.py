"""Flask application factory for the vinclip web UI."""

import tempfile
from pathlib import Path

from flask import Flask, jsonify

from vinclip.config import AppConfig


def create_app(
    work_dir: Path | None = None,
    config: AppConfig | None = None,
    run_async: bool = True,
) -> Flask:
    app = Flask(__name__)
    app.config["WORK_DIR"] = work_dir or Path(tempfile.mkdtemp(prefix="vinclip_"))
    app.config["VINCLIP"] = config or AppConfig()
    app.config["RUN_ASYNC"] = run_async
    app.config["MAX_CONTENT_LENGTH"] = 4 * 1024 * 1024 * 1024  # 4 GB

    from vinclip.web.routes import bp
    app.register_blueprint(bp)

    @app.errorhandler(413)
    def request_entity_too_large(error):
        return jsonify({"error": "File too large"}), 413

    return app

"""
Draw Results API: Flask application entry point.
Wires the stores, engines and blueprints together and exposes the REST API
under /api.
"""
import logging
from datetime import datetime, timezone

import click
from flask import Flask, jsonify

import config
from api.app_config import app_config_bp
from api.auth import auth_bp
from api.results import results_bp
from api.version_gate import VersionPolicy, make_version_check
from auth.mailer import Mailer
from auth.service import AuthService
from engine.errors import ResultsError
from engine.query import ResultQueryEngine
from engine.registry import CategoryRegistry
from engine.upsert import ResultUpsertEngine
from ingestion.auto_submit import AutoSubmitter
from ingestion.scheduler import QuarterHourScheduler
from storage.cache import ResultCache, build_store
from storage.mongo_client import ensure_indexes, get_db, is_connected
from storage.readings import FlatReadingStore, GroupedReadingStore

logger = logging.getLogger(__name__)


def default_version_policy() -> VersionPolicy:
    return VersionPolicy(
        minimum_required_version=config.MINIMUM_REQUIRED_VERSION,
        latest_version=config.LATEST_VERSION,
        force_update=config.FORCE_UPDATE,
        apk_url=config.APK_URL,
    )


def default_mailer() -> Mailer:
    return Mailer(
        backend=config.MAIL_BACKEND,
        host=config.SMTP_HOST,
        port=config.SMTP_PORT,
        user=config.MAIL_USER,
        password=config.MAIL_PASSWORD,
        sender=config.MAIL_FROM,
    )


def create_app(db=None, cache_store=None, version_policy=None, mailer=None,
               jwt_secret=None, clock=None) -> Flask:
    """
    Build the application.  Every collaborator can be injected; anything
    left out is built from config.py.
    """
    app = Flask(__name__)

    db = db if db is not None else get_db()
    ensure_indexes(db)
    cache = ResultCache(cache_store or build_store(config.REDIS_URL, config.MEMORY_CACHE_MAX_SIZE))
    version_policy = version_policy or default_version_policy()

    grouped = GroupedReadingStore(
        db[config.COLLECTION_RESULTS],
        case_insensitive=config.GROUPED_CATEGORY_CASE_INSENSITIVE,
    )
    flat = FlatReadingStore(
        db[config.COLLECTION_RESULTS_FLAT],
        case_insensitive=config.FLAT_CATEGORY_CASE_INSENSITIVE,
    )

    app.extensions["db"] = db
    app.extensions["version_policy"] = version_policy
    app.extensions["upsert_engine"] = ResultUpsertEngine(
        grouped, flat, cache,
        result_ttl=config.RESULT_CACHE_TTL,
        flat_ttl=config.FLAT_UPLOAD_CACHE_TTL,
    )
    app.extensions["query_engine"] = ResultQueryEngine(
        grouped, flat, cache,
        ttl=config.RESULT_CACHE_TTL,
        clock=clock or datetime.now,
    )
    app.extensions["category_registry"] = CategoryRegistry(
        db[config.COLLECTION_CATEGORY_KEYS], cache,
        known_keys=config.KNOWN_CATEGORY_KEYS,
        ttl=config.CATEGORY_CACHE_TTL,
    )
    app.extensions["auth_service"] = AuthService(
        db[config.COLLECTION_USERS],
        mailer or default_mailer(),
        secret=jwt_secret or config.JWT_SECRET,
        token_hours=config.JWT_EXPIRY_HOURS,
        otp_minutes=config.OTP_TTL_MINUTES,
    )

    # The version gate runs before every /api route except app-config.
    app.before_request(make_version_check(
        version_policy, exempt_endpoints=("app_config.get_app_config", "health"),
    ))
    app.register_blueprint(app_config_bp, url_prefix="/api")
    app.register_blueprint(results_bp, url_prefix="/api")
    app.register_blueprint(auth_bp, url_prefix="/api")

    @app.route("/api/health")
    def health():
        return jsonify({
            "status": "ok",
            "mongo_connected": is_connected(db),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    @app.errorhandler(ResultsError)
    def handle_results_error(exc: ResultsError):
        if exc.status_code >= 500:
            logger.error("%s: %s", type(exc).__name__, exc.message)
        return jsonify({
            "message": exc.message,
            "baseResponse": {"message": exc.message, "status": 0},
        }), exc.status_code

    @app.cli.command("create-user")
    @click.argument("email")
    @click.argument("password")
    @click.option("--first-name", default="")
    @click.option("--last-name", default="")
    def create_user(email, password, first_name, last_name):
        """Create a login for the result dashboard."""
        user_id = app.extensions["auth_service"].create_user(email, password, first_name, last_name)
        click.echo(f"Created user {email} ({user_id})")

    return app


def configure_logging(level: str = config.LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

if __name__ == "__main__":
    configure_logging()
    app = create_app()
    scheduler = None
    if config.AUTO_SUBMIT_ENABLED:
        scheduler = QuarterHourScheduler(AutoSubmitter(
            config.AUTO_SUBMIT_BASE_URL,
            config.AUTO_SUBMIT_CATEGORY,
            config.AUTO_SUBMIT_KEY,
        ).submit)
        scheduler.start()
    logger.info("Draw Results API starting on %s:%s", config.FLASK_HOST, config.FLASK_PORT)
    try:
        app.run(host=config.FLASK_HOST, port=config.FLASK_PORT, debug=config.FLASK_DEBUG,
                threaded=True, use_reloader=False)
    finally:
        if scheduler is not None:
            scheduler.stop()

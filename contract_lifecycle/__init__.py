from flask import Flask
from flasgger import Swagger
from prometheus_flask_exporter import PrometheusMetrics
from flask_cors import CORS
import os

from .logging_setup import setup_logging
from .routes import task_routes, contract_routes, health
from .config import DevelopmentConfig, ProductionConfig, TestingConfig


def create_app(config_name: str = "development"):
    app = Flask(__name__)

    config_map = {
        "development": DevelopmentConfig,
        "production": ProductionConfig,
        "testing": TestingConfig,
    }
    app.config.from_object(config_map.get(config_name.lower(), DevelopmentConfig))

    setup_logging(app)

    # CORS from the CORS_ORIGINS env var
    # - unset or '*' -> every origin
    # - "https://app.example.com,https://admin.example.com" -> only those
    cors_origin = os.getenv("CORS_ORIGINS", "*").strip()
    cors_common_kwargs = dict(
        supports_credentials=False,
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"],
        allow_headers=[
            "Content-Type",
            "Authorization",
            "X-Requested-With",
            "Accept",
            "Origin",
            "User-Agent",
            "Cache-Control",
            "Pragma",
            "X-Request-ID",
        ],
    )
    if cors_origin == "*" or cors_origin == "":
        CORS(app, resources={r"/*": {"origins": "*"}}, **cors_common_kwargs)
    else:
        origins_list = [o.strip() for o in cors_origin.split(",") if o.strip()]
        CORS(app, resources={r"/*": {"origins": origins_list}}, **cors_common_kwargs)

    # models import here, once the app exists
    from .models import init_app as init_models
    init_models(app)

    from .services.lifecycle import init_app as init_lifecycle
    init_lifecycle(app)

    # Swagger
    swagger_template = {
        "swagger": "2.0",
        "info": {
            "title": "Contract Lifecycle API",
            "description": "Deploy, call, upgrade and roll back smart contracts.",
            "version": "1.0.0",
        },
        "basePath": "/",
        "schemes": [s.strip() for s in os.getenv("SWAGGER_SCHEMES", "https").split(",") if s.strip()],
    }
    swagger_config = {
        "headers": [],
        "specs": [
            {
                "endpoint": "apispec_1",
                "route": "/apispec_1.json",
                "rule_filter": lambda rule: True,
                "model_filter": lambda tag: True,
            }
        ],
        "static_url_path": "/flasgger_static",
        "swagger_ui": True,
        "specs_route": "/apidocs/",
    }
    Swagger(app, template=swagger_template, config=swagger_config)

    # Blueprints
    app.register_blueprint(task_routes.bp)
    app.register_blueprint(health.bp)
    app.register_blueprint(contract_routes.bp, url_prefix="/api/contracts")

    # CLI: flask contracts ...
    from .cli import contracts_cli
    app.cli.add_command(contracts_cli)

    # Metrics
    metrics = PrometheusMetrics(app, path="/metrics", group_by="endpoint")
    metrics.info("app_info", "Contract lifecycle service", version="1.0.0")

    return app

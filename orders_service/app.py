import logging
import os

from flask import Flask

from .config import Config
from .db import db
from .errors import register_error_handlers
from .routes.admin import bp_admin
from .routes.orders import bp as orders_bp

logging.basicConfig(
    level=Config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


def create_app(config: dict = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    if config:
        app.config.update(config)

    db.init_app(app)
    with app.app_context():
        db.create_all()

    register_error_handlers(app)
    app.register_blueprint(orders_bp)
    app.register_blueprint(bp_admin)

    @app.get("/")
    def index():
        return {"service": "orders", "status": "ok", "prefix": "/orders"}

    @app.get("/health")
    def health():
        return {"service": "orders", "status": "ok"}, 200

    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=int(os.getenv("PORT", "5006")), debug=False)

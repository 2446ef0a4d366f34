# app.py
from flask import Flask, request, jsonify
import os
import logging
from logging.handlers import RotatingFileHandler
from pydantic import ValidationError
from werkzeug.middleware.proxy_fix import ProxyFix

# --- 1. Initialize Flask App and Basic Config ---
app = Flask(__name__)
PORT = int(os.getenv("PORT", 3000))
TRUST_PROXY_HOPS = int(os.getenv("TRUST_PROXY_HOPS", "0"))

if TRUST_PROXY_HOPS > 0:
    # remote_addr is taken from X-Forwarded-For
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=TRUST_PROXY_HOPS)

# --- 2. Define Logging Setup Function ---
def setup_logging(app):
    """Configures console and rotating-file logging for the Flask app."""
    log_level_str = os.environ.get("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    log_directory = os.environ.get("LOG_DIR", "/app/logs")
    if log_directory:
        os.makedirs(log_directory, exist_ok=True)
        log_file = os.path.join(log_directory, "stock_price_service.log")
        file_handler = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=5)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    app.logger.setLevel(log_level)
    app.logger.propagate = False

    # Clear existing handlers to avoid duplication
    for h in list(app.logger.handlers):
        app.logger.removeHandler(h)
    for h in handlers:
        app.logger.addHandler(h)

    # prevent werkzeug from duplicating to root/stdout
    werk = logging.getLogger("werkzeug")
    werk.propagate = False
    for h in list(werk.handlers):
        if isinstance(h, logging.StreamHandler):
            werk.removeHandler(h)

    # Module loggers that should emit through the same handlers
    module_names = [
        "helper_functions",
        "price_fetcher",
        "services.stock_price_service",
        "database.mongo_client",
    ]
    for name in module_names:
        module_logger = logging.getLogger(name)
        module_logger.setLevel(log_level)
        module_logger.propagate = False
        for h in list(module_logger.handlers):
            module_logger.removeHandler(h)
        for h in handlers:
            module_logger.addHandler(h)

    app.logger.info("Stock price service logging initialized.")
# --- End of Logging Setup ---
setup_logging(app)

# --- 3. Import Project-Specific Modules ---
from database import mongo_client
from services import stock_price_service
from helper_functions import normalize_symbols, parse_like_flag, visitor_fingerprint
from errors import StockServiceError
from shared.contracts import StockPriceResponse, StockPricePairResponse

_DB_EXTENSION_KEY = "stock_db"


def register_db(flask_app, db) -> None:
    """Injects the storage handle used by the request handlers."""
    flask_app.extensions[_DB_EXTENSION_KEY] = db


def get_db():
    """
    Returns the injected database handle, connecting once on first use
    when none was registered.
    """
    db = app.extensions.get(_DB_EXTENSION_KEY)
    if db is None:
        client, db = mongo_client.connect()
        mongo_client.initialize_indexes(db)
        register_db(app, db)
        app.logger.info("Connected to MongoDB and ensured indexes.")
    return db


def _validate_stock_payload(payload: dict) -> dict:
    model = StockPricePairResponse if isinstance(payload.get("stockData"), list) else StockPriceResponse
    return model.model_validate(payload).model_dump()


@app.route('/api/stock-prices', methods=['GET'])
def get_stock_prices():
    """
    Returns price and likes for one stock, or price and relative likes for two.

    Query Parameters:
      - stock: ticker symbol, given once or twice (?stock=GOOG&stock=MSFT)
      - like:  optional; "true" or "1" records a like from this visitor

    Returns (JSON):
      one stock:  { "stockData": { "stock": str, "price": float, "likes": int } }
      two stocks: { "stockData": [ { "stock": str, "price": float, "rel_likes": int }, ... ] }

    Status Codes:
      - 200: Success
      - 400: Missing, invalid or too many symbols
      - 500: Quote provider or database failure
    """
    try:
        symbols = normalize_symbols(
            request.args.getlist("stock") or request.args.getlist("stock[]")
        )
        like = parse_like_flag(request.args.get("like"))
        fingerprint = visitor_fingerprint(request.remote_addr) if like else None

        payload = stock_price_service.get_stock_data(get_db(), symbols, like, fingerprint)
        return jsonify(_validate_stock_payload(payload)), 200

    except StockServiceError as e:
        if e.status_code >= 500:
            app.logger.error(f"Stock price request failed: {e}")
        else:
            app.logger.warning(f"Rejected stock price request: {e}")
        return jsonify({"error": str(e)}), e.status_code
    except ValidationError as ve:
        app.logger.error(f"Pydantic validation failed for stock price response: {ve}")
        return jsonify({"error": "Invalid response format from service"}), 500
    except Exception as e:
        app.logger.error(f"An unexpected error occurred in /api/stock-prices: {e}", exc_info=True)
        return jsonify({"error": "An internal server error occurred"}), 500


@app.route('/health', methods=['GET'])
def health():
    try:
        mongo_client.ping(get_db())
        return jsonify({"status": "healthy"}), 200
    except Exception as e:
        app.logger.error(f"Health check failed: {e}")
        return jsonify({"status": "unhealthy", "error": str(e)}), 503


if __name__ == '__main__':
    app.run(host='0.0.0.0', port=PORT, threaded=True)

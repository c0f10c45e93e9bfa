"""
Sophon Smart Account Deployer HTTP service

JSON endpoints for:
1. Previewing the factory transaction for an owner (no network writes)
2. Deploying the owner's Nexus smart account, optionally with an SNS name
3. Checking whether an SNS name is still available
"""

import asyncio
import logging
import os
import threading
from typing import Any, Dict, Optional, Tuple

from flask import Flask, jsonify, request

from account_init import normalize_owner
from deployer import SmartAccountDeployer, create_smart_account_deployer
from exceptions import (
    InsufficientSignerBalanceError,
    InvalidNameError,
    InvalidOwnerAddressError,
    TransactionRevertedError,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Server defaults
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080


def parse_deployment_request(payload: Optional[Dict[str, Any]]) -> Tuple[str, Optional[str]]:
    """Extract and validate owner and optional name from a request body"""
    payload = payload or {}
    owner = normalize_owner(str(payload.get("owner") or "").strip())

    name = str(payload.get("name") or "").strip()
    return owner, name or None


def format_error_response(error: Exception, action: str):
    """Map an error to a status code and a readable message"""
    if isinstance(error, (InvalidOwnerAddressError, InvalidNameError)):
        return jsonify({"error": str(error)}), 400
    if isinstance(error, InsufficientSignerBalanceError):
        return jsonify({"error": str(error)}), 503
    if isinstance(error, TransactionRevertedError):
        return jsonify({"error": str(error), "transaction_hash": error.transaction_hash}), 502

    logger.error(f"Error while {action}: {error}")
    return jsonify({"error": f"Unexpected error while {action}: {error}"}), 500


class EventLoopThread:
    """Runs coroutines on one long-lived event loop shared by all request threads"""

    def __init__(self):
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self.loop.run_forever, daemon=True)
        self._thread.start()

    def run(self, coroutine):
        return asyncio.run_coroutine_threadsafe(coroutine, self.loop).result()

    def stop(self) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join()
        self.loop.close()


class DeployerHttpHandler:
    """Handles HTTP requests for account previews and deployments"""

    def __init__(self, deployer: Optional[SmartAccountDeployer] = None):
        self.app = Flask(__name__)
        self.deployer = deployer or create_smart_account_deployer()
        self.event_loop = EventLoopThread()
        self._setup_routes()

    def _setup_routes(self) -> None:
        """Set up Flask routes"""
        self.app.route("/accounts/preview", methods=["POST"])(self.handle_preview)
        self.app.route("/accounts", methods=["POST"])(self.handle_deploy)
        self.app.route("/names/<name>/availability", methods=["GET"])(self.handle_name_availability)
        self.app.route("/health", methods=["GET"])(self.health_check)

    def handle_preview(self):
        try:
            owner, name = parse_deployment_request(request.get_json(silent=True))
            preview = self.event_loop.run(self.deployer.preview(owner, name))
            return jsonify(preview.as_dict())
        except Exception as e:
            return format_error_response(e, "building the deployment transaction")

    def handle_deploy(self):
        try:
            owner, name = parse_deployment_request(request.get_json(silent=True))
            result = self.event_loop.run(self.deployer.deploy(owner, name))
            return jsonify(result.as_dict())
        except Exception as e:
            return format_error_response(e, "deploying")

    def handle_name_availability(self, name: str):
        try:
            available = self.event_loop.run(self.deployer.is_name_available(name))
            return jsonify({"name": name, "available": available})
        except Exception as e:
            return format_error_response(e, "checking name availability")

    def health_check(self):
        """Dead-simple health check endpoint"""
        return "OK", 200

    def run(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
        """Run the Flask application"""
        self.app.run(host=host, port=port)


if __name__ == "__main__":
    handler = DeployerHttpHandler()
    handler.run(
        host=os.environ.get("HOST", DEFAULT_HOST),
        port=int(os.environ.get("PORT", DEFAULT_PORT)),
    )

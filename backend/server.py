"""
Server entry point for the bank payments portal.
Run: uvicorn backend.server:app --host 0.0.0.0 --port 8001
"""

import sys
import os
import logging

# Ensure the project root is on the Python path
_project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _project_root)

# Load .env from BOTH backend dir and project root (backend first, root overrides)
from dotenv import load_dotenv
load_dotenv(os.path.join(os.path.dirname(os.path.abspath(__file__)), '.env'))
load_dotenv(os.path.join(_project_root, '.env'), override=True)

from config import Config

# Setup logging
logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logging.getLogger('httpx').setLevel(logging.WARNING)
logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
logging.getLogger('passlib').setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

from portal_server import create_app

app = create_app()
logger.info(f"Bank payments portal loaded ({Config.CURRENT_ENVIRONMENT})")


if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", "8001"))
    uvicorn.run(app, host="0.0.0.0", port=port)

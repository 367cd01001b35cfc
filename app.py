from dotenv import load_dotenv
import logging

from api.routes import create_app
from lib.config import get_settings

load_dotenv()

logger = logging.getLogger(__name__)

settings = get_settings()
app = create_app(settings)

if __name__ == "__main__":
    # Log startup
    logger.info("Starting Flask server...")
    logger.info(f"Call proxy URL: {settings.call_proxy_url}")
    app.run(debug=True, port=8000)

import logging
import sys

from config import LOG_LEVEL

# Configure logging
def setup_logging():
    # Create logger
    logger = logging.getLogger("expense_api")
    logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

    # Avoid duplicate handlers when the module is re-imported (reload, tests)
    if logger.handlers:
        return logger

    # Create console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)

    # Create formatter
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    console_handler.setFormatter(formatter)

    # Add handler to logger
    logger.addHandler(console_handler)

    return logger

# Get the logger
logger = setup_logging()

def log_request_info(request, message="Request received"):
    """Log the request line; headers only at debug level, without credentials"""
    logger.info(f"{message}: {request.method} {request.url.path}")
    if logger.isEnabledFor(logging.DEBUG):
        headers = {
            key: value for key, value in request.headers.items()
            if key.lower() not in ("authorization", "cookie")
        }
        logger.debug(f"Request headers: {headers}")

def log_response_info(response, message="Response sent"):
    """Log the response status"""
    logger.info(f"{message}: Status {response.status_code}")
    logger.debug(f"Response headers: {dict(response.headers)}")

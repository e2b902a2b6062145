import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# MongoDB
MONGO_CONNECTION_STRING = os.getenv("MONGO_CONNECTION_STRING", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "expense_management")

# JWT settings
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24))  # 24 hours

# Currency conversion
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "USD")
EXCHANGE_RATE_API_URL = os.getenv("EXCHANGE_RATE_API_URL", "https://api.exchangerate-api.com/v4/latest/{base}")
EXCHANGE_RATE_TIMEOUT = float(os.getenv("EXCHANGE_RATE_TIMEOUT", 10))

# Receipt OCR through OpenRouter
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "")
OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
RECEIPT_OCR_MODEL = os.getenv("RECEIPT_OCR_MODEL", "google/gemini-2.0-flash-exp:free")
SITE_URL = os.getenv("SITE_URL", "http://localhost:8000")
SITE_NAME = os.getenv("SITE_NAME", "Expense Management System")

# Uploads
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
RECEIPTS_DIR = os.path.join(UPLOAD_DIR, "receipts")

# Misc
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]
MAX_DECISION_RETRIES = int(os.getenv("MAX_DECISION_RETRIES", 3))

import os

from dotenv import load_dotenv

load_dotenv()

# --- Database ---
MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
DB_NAME = os.getenv("DB_NAME") or "ecommerceDB"

# --- Web ---
SESSION_SECRET = os.getenv("SESSION_SECRET", "dev-secret")
SESSION_MAX_AGE = int(os.getenv("SESSION_MAX_AGE", str(15 * 60)))
BASE_URL = os.getenv("BASE_URL", "http://localhost:3000").rstrip("/")
WEB_BIND = os.getenv("WEB_BIND", "127.0.0.1")
WEB_PORT = int(os.getenv("PORT", os.getenv("WEB_PORT", "3000")))
SHOW_STACK = os.getenv("SHOW_STACK", "").lower() == "true"

# --- Email (Resend) ---
RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
RESEND_FROM_EMAIL = os.getenv("RESEND_FROM_EMAIL", "")
RESEND_API_URL = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")

# Verification and reset links stay valid for one hour.
TOKEN_TTL_SECONDS = int(os.getenv("TOKEN_TTL_SECONDS", "3600"))

# --- Reports ---
CURRENCY_SYMBOL = os.getenv("CURRENCY_SYMBOL", "₱")
# Core PDF fonts have no peso glyph.
PDF_CURRENCY_SYMBOL = os.getenv("PDF_CURRENCY_SYMBOL", "PHP ")

# --- Google Sheets export ---
GOOGLE_SERVICE_ACCOUNT_EMAIL = os.getenv("GOOGLE_SERVICE_ACCOUNT_EMAIL", "")
GOOGLE_PRIVATE_KEY = os.getenv("GOOGLE_PRIVATE_KEY", "")
GOOGLE_SHARE_WITH = os.getenv("GOOGLE_SHARE_WITH", "")

# --- Default service catalog ---
DEFAULT_SERVICES = [
    {"id": "wash-fold", "name": "Wash & Fold", "price": 180, "description": "Standard wash and fold service"},
    {"id": "dry-clean", "name": "Dry Clean", "price": 250, "description": "Dry cleaning for delicate garments"},
    {"id": "ironing", "name": "Ironing", "price": 120, "description": "Ironing and pressing service"},
]

# --- Logging ---
LOG_FILE = os.getenv("LOG_FILE", os.path.join(os.getcwd(), "logs", "washdesk.log"))

import os
from dotenv import load_dotenv

load_dotenv()

DATA_DIR = os.getenv("DATA_DIR", os.path.join(os.getcwd(), "data"))
STORE_STATUS_CSV = os.getenv("STORE_STATUS_CSV", os.path.join(DATA_DIR, "store_status.csv"))
BUSINESS_HOURS_CSV = os.getenv("BUSINESS_HOURS_CSV", os.path.join(DATA_DIR, "business_hours.csv"))
TIMEZONES_CSV = os.getenv("TIMEZONES_CSV", os.path.join(DATA_DIR, "timezones.csv"))

DATASET_URL = os.getenv(
    "DATASET_URL",
    "https://storage.googleapis.com/hiring-problem-statements/store-monitoring-data.zip",
)
DOWNLOAD_DATASETS = os.getenv("DOWNLOAD_DATASETS", "false").lower() in ("1", "true", "yes")

DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "America/Chicago")

# Rows per pandas chunk when streaming the status polls
CSV_CHUNK_SIZE = int(os.getenv("CSV_CHUNK_SIZE", "100000"))
REPORT_MAX_WORKERS = int(os.getenv("REPORT_MAX_WORKERS", "4"))

APP_ENV = os.getenv("APP_ENV", "production")
DEVELOPMENT = APP_ENV == "development"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))

# Comma separated origins allowed to call the API from a browser
CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

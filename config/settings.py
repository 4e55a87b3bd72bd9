"""Central Configuration for CardioCheck."""
import os
from pathlib import Path
from dotenv import load_dotenv

# Base Directory (Root of the project)
BASE_DIR = Path(__file__).resolve().parent.parent

# Load Environment Variables
load_dotenv(BASE_DIR / ".env")


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() not in ("false", "0", "no", "off")


# LLM Settings (AI extraction)
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY")
GEMINI_MODEL_NAME = os.getenv("GEMINI_MODEL_NAME", "gemini-2.0-flash")
USE_AI_EXTRACTION = _env_flag("USE_AI_EXTRACTION", True)

# Every outbound network wait is bounded by this
EXTERNAL_CALL_TIMEOUT_SECONDS = float(os.getenv("EXTERNAL_CALL_TIMEOUT_SECONDS", "5"))

# ML-assisted risk model (Hugging Face inference)
HF_API_TOKEN = (
    os.getenv("HF_API_TOKEN")
    or os.getenv("HUGGINGFACE_API_KEY")
    or os.getenv("HF_TOKEN")
)
ML_MODEL_NAME = os.getenv("ML_MODEL_NAME", "Sarah0022/heart-disease-model")
HF_INFERENCE_URL = os.getenv(
    "HF_INFERENCE_URL", "https://api-inference.huggingface.co/models"
).rstrip("/")

# Persistence (unset = disabled)
FHIR_SERVER_URL = (os.getenv("FHIR_SERVER_URL") or "").rstrip("/") or None

# Population statistics
SYNTHEA_DATA_DIR = Path(os.getenv("SYNTHEA_DATA_DIR", str(BASE_DIR / "data" / "synthea")))

# Session store
MAX_SESSIONS = int(os.getenv("MAX_SESSIONS", "1000"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

"""
Configuration - env vars, constants, API key setup.
"""

import os
import logging
from pathlib import Path
from dotenv import load_dotenv
import google.generativeai as genai

ROOT_DIR = Path(__file__).parent.parent
load_dotenv(ROOT_DIR / '.env')

# Logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("paperscore")

# Database
MONGO_URL = os.environ.get("MONGO_URL", "mongodb://localhost:27017")
DB_NAME = os.environ.get("DB_NAME", "paperscore")

# Recognition service
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY")
RECOGNITION_MODEL = os.environ.get("RECOGNITION_MODEL", "gemini-2.5-flash")
RECOGNITION_RETRY_DELAY_SECONDS = float(os.environ.get("RECOGNITION_RETRY_DELAY_SECONDS", "10"))

# Analysis run pacing (the vision API quota is per minute)
ANALYSIS_COOLDOWN_EVERY = int(os.environ.get("ANALYSIS_COOLDOWN_EVERY", "10"))
ANALYSIS_COOLDOWN_SECONDS = float(os.environ.get("ANALYSIS_COOLDOWN_SECONDS", "25"))
ANALYSIS_LOCK_TTL_SECONDS = int(os.environ.get("ANALYSIS_LOCK_TTL_SECONDS", "3600"))

# Fraction of the exam maximum a student needs to pass
PASS_THRESHOLD = float(os.environ.get("PASS_THRESHOLD", "0.5"))

if not GEMINI_API_KEY:
    logger.warning("⚠️ No GEMINI_API_KEY found - paper analysis will fail")
else:
    genai.configure(api_key=GEMINI_API_KEY)


def get_llm_api_key():
    """Get the LLM API key from environment variables."""
    return GEMINI_API_KEY


def get_version_info():
    """Get deployment version information."""
    git_commit = os.environ.get("GIT_COMMIT_SHA")
    if not git_commit:
        try:
            if os.path.exists(".git_commit"):
                with open(".git_commit", "r") as f:
                    git_commit = f.read().strip()
        except OSError:
            pass

    if not git_commit:
        logger.warning("GIT_COMMIT_SHA not set and .git_commit not found. Build pipeline issue?")
        git_commit = "unknown"

    build_time = os.environ.get("BUILD_TIME", "unknown")
    env = os.environ.get("ENV", os.environ.get("ENVIRONMENT", "development"))

    return {
        "git_commit": git_commit,
        "build_time": build_time,
        "environment": env
    }

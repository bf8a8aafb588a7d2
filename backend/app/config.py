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
logger = logging.getLogger("scangrade")

# LLM API Key
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY")

if not GEMINI_API_KEY:
    logger.warning("⚠️ No GEMINI_API_KEY found - answer sheet scanning will fail")
else:
    genai.configure(api_key=GEMINI_API_KEY)

GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")

# Still frames are re-encoded as JPEG at this fixed quality before upload
JPEG_QUALITY = int(os.environ.get("JPEG_QUALITY", "92"))

ANSWER_OPTIONS = [
    opt.strip() for opt in os.environ.get("ANSWER_OPTIONS", "ก,ข,ค,ง").split(",") if opt.strip()
]

DEFAULT_TOTAL_QUESTIONS = int(os.environ.get("DEFAULT_TOTAL_QUESTIONS", "10"))


def get_llm_api_key():
    """Get the LLM API key from environment variables."""
    return os.environ.get("GEMINI_API_KEY") or GEMINI_API_KEY


def get_version_info():
    """Get deployment version information."""
    git_commit = os.environ.get("GIT_COMMIT_SHA")
    if not git_commit:
        try:
            if os.path.exists(".git_commit"):
                with open(".git_commit", "r") as f:
                    git_commit = f.read().strip()
        except OSError as e:
            logger.warning(f"Could not read .git_commit: {e}")

    if not git_commit:
        git_commit = "unknown"

    build_time = os.environ.get("BUILD_TIME", "unknown")
    env = os.environ.get("ENV", os.environ.get("ENVIRONMENT", "development"))

    return {
        "git_commit": git_commit,
        "build_time": build_time,
        "environment": env
    }

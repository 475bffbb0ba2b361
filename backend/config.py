"""Configuration management for Telegram Bot Forge."""
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Server Configuration
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"

# CORS Configuration
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173"
).split(",")

# Completion Service Configuration
# Leave unset to use the groq SDK default endpoint (or GROQ_BASE_URL)
COMPLETION_BASE_URL = os.getenv("COMPLETION_BASE_URL") or None
AVAILABLE_MODELS = [
    model.strip()
    for model in os.getenv(
        "AVAILABLE_MODELS",
        "llama-3.3-70b-versatile,llama-3.1-8b-instant,openai/gpt-oss-120b,openai/gpt-oss-20b"
    ).split(",")
    if model.strip()
]
DEFAULT_MODEL = os.getenv("DEFAULT_MODEL", AVAILABLE_MODELS[0] if AVAILABLE_MODELS else "")

# Display metadata for the model picker; models missing here are listed by id
MODEL_CATALOG = {
    "llama-3.3-70b-versatile": {
        "name": "Llama 3.3 70B",
        "provider": "Meta",
        "description": "Advanced reasoning capabilities",
    },
    "llama-3.1-8b-instant": {
        "name": "Llama 3.1 8B",
        "provider": "Meta",
        "description": "Fast and efficient model",
    },
    "openai/gpt-oss-120b": {
        "name": "GPT-OSS 120B",
        "provider": "OpenAI",
        "description": "Large context understanding",
    },
    "openai/gpt-oss-20b": {
        "name": "GPT-OSS 20B",
        "provider": "OpenAI",
        "description": "Powerful general-purpose model",
    },
}

# Retry Configuration
MAX_COMPLETION_ATTEMPTS = int(os.getenv("MAX_COMPLETION_ATTEMPTS", "5"))
INITIAL_RETRY_DELAY_SECONDS = float(os.getenv("INITIAL_RETRY_DELAY_SECONDS", "1.0"))

# Token budgets and sampling temperatures per stage
CONVERSATION_MAX_TOKENS = 5000
CONVERSATION_TEMPERATURE = 0.7
GENERATION_MAX_TOKENS = 8000
GENERATION_TEMPERATURE = 0.6
MODIFY_MAX_TOKENS = 9000
MODIFY_TEMPERATURE = 0.4
DISCUSS_MAX_TOKENS = 2000
DISCUSS_TEMPERATURE = 0.7

# Session Configuration
SESSION_IDLE_TIMEOUT_SECONDS = int(os.getenv("SESSION_IDLE_TIMEOUT_SECONDS", "3600"))

# Completion audit log (JSON Lines); empty string disables it
COMPLETION_LOG_PATH = os.getenv("COMPLETION_LOG_PATH", "logs/completions.jsonl")

# Artifact download names
SOURCE_FILENAME = "telegram_bot.py"
MANIFEST_FILENAME = "requirements.txt"

# Logging Configuration
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

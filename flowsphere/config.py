"""Centralized configuration for the FlowSphere email service.

Typed constants for database, retention, monitoring, LLM providers, the
assistant and the API. Environment variable overrides use safe defaults so
the app starts without extra env configuration.
"""

from __future__ import annotations

import os

# --- App ---
APP_VERSION: str = "1.0.0"
APP_ENV: str = os.getenv("FLOWSPHERE_ENV", "development")

# --- Database ---
DB_POOL_SIZE: int = int(os.getenv("FLOWSPHERE_DB_POOL_SIZE", "5"))
DB_POOL_TIMEOUT: float = float(os.getenv("FLOWSPHERE_DB_POOL_TIMEOUT", "5.0"))
DB_CONNECT_TIMEOUT: float = float(os.getenv("FLOWSPHERE_DB_CONNECT_TIMEOUT", "30.0"))
DB_TEMP_CONN_MAX: int = int(os.getenv("FLOWSPHERE_DB_TEMP_CONN_MAX", "10"))
DB_RETRY_MAX: int = int(os.getenv("FLOWSPHERE_DB_RETRY_MAX", "5"))
DB_RETRY_BASE_DELAY: float = float(os.getenv("FLOWSPHERE_DB_RETRY_BASE_DELAY", "0.1"))
DB_RETRY_MAX_DELAY: float = float(os.getenv("FLOWSPHERE_DB_RETRY_MAX_DELAY", "2.0"))
DB_RETRY_JITTER: float = float(os.getenv("FLOWSPHERE_DB_RETRY_JITTER", "0.1"))

# --- Retention (days) ---
RETENTION_NON_WORK_DAYS: int = int(os.getenv("FLOWSPHERE_RETENTION_NON_WORK_DAYS", "7"))
RETENTION_WORK_DAYS: int = int(os.getenv("FLOWSPHERE_RETENTION_WORK_DAYS", "90"))
RETENTION_ARCHIVE_DAYS: int = int(os.getenv("FLOWSPHERE_RETENTION_ARCHIVE_DAYS", "1825"))
DELETE_OLD_EMAILS_DEFAULT_DAYS: int = 30

# --- Archive search ---
ARCHIVE_SEARCH_MAX_RESULTS: int = 50
ARCHIVE_SEARCH_YEARS_BACK: int = 5

# --- Monitor ---
MONITOR_CHECK_INTERVAL_SECONDS: float = float(
    os.getenv("FLOWSPHERE_MONITOR_INTERVAL", "30")
)
MONITOR_TOKEN_REFRESH_BUFFER_SECONDS: int = 5 * 60
MONITOR_INITIAL_LOOKBACK_HOURS: int = 24
MONITOR_INITIAL_SYNC_DAYS: int = 7
MONITOR_INITIAL_SYNC_BATCH_SIZE: int = 10
MONITOR_MAX_STORED_ALERTS: int = 100
GMAIL_MAX_RESULTS: int = 100

# --- LLM ---
LLM_TIMEOUT_SECONDS: int = int(os.getenv("FLOWSPHERE_LLM_TIMEOUT", "30"))
LLM_MAX_RETRIES: int = int(os.getenv("FLOWSPHERE_LLM_MAX_RETRIES", "2"))
LLM_PROVIDER_RESET_SECONDS: float = 5 * 60
CLASSIFIER_TEMPERATURE: float = 0.2
CLASSIFIER_MAX_TOKENS: int = 600
CLASSIFIER_BATCH_SIZE: int = 5
CLASSIFIER_BODY_CHARS: int = 1000
RULES_CONFIDENCE_THRESHOLD: float = 0.7

GROQ_ENDPOINT: str = "https://api.groq.com/openai/v1/chat/completions"
GROQ_MODEL: str = os.getenv("FLOWSPHERE_GROQ_MODEL", "llama-3.3-70b-versatile")
GEMINI_ENDPOINT: str = (
    "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-flash:generateContent"
)
GEMINI_MODEL: str = "gemini-1.5-flash"
OPENROUTER_ENDPOINT: str = "https://openrouter.ai/api/v1/chat/completions"
OPENROUTER_MODEL: str = "meta-llama/llama-3.2-3b-instruct:free"

# --- AI plan ---
AI_USAGE_LOG_MAX: int = 1000
AI_TOKENS_PER_CLASSIFICATION: int = 600

# --- Assistant ---
ASSISTANT_TEMPERATURE: float = 0.6
ASSISTANT_MAX_TOKENS: int = 2048
ASSISTANT_SEARCH_LIMIT: int = 50
ASSISTANT_RESPONSE_EMAIL_LIMIT: int = 10
ASSISTANT_CONTEXT_MAX_EMAILS: int = 15
ASSISTANT_CONTEXT_CONTENT_CHARS: int = 1500
SEMANTIC_SEARCH_LIMIT: int = 100

# --- Subscription extraction ---
SUBSCRIPTION_EXTRACT_TEMPERATURE: float = 0.2
SUBSCRIPTION_EXTRACT_MAX_TOKENS: int = 500
SUBSCRIPTION_EXTRACT_EMAILS_PER_SENDER: int = 5
SUBSCRIPTION_MIN_CONFIDENCE: float = 0.5
SUBSCRIPTION_UPCOMING_DAYS: int = 30
SUBSCRIPTION_SPEND_INSIGHT_THRESHOLD: float = 100.0

# --- API ---
API_LIST_LIMIT_DEFAULT: int = 100
API_LIST_LIMIT_MAX: int = 500
API_BATCH_SIZE_MAX: int = 500

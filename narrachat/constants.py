# narrachat/constants.py

APP_NAME = "NarraChat"
__version__ = "0.4.0"
DEFAULT_LOG_FILENAME = "app.log"
DEFAULT_LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_LOG_BACKUP_COUNT = 5

# wire protocol
DATA_FIELD = "data:"
DONE_SENTINEL = "[DONE]"
DEFAULT_TIMEOUT = 120
API_KEY_ENV = "NARRACHAT_API_KEY"

GREETING = (
    "I'm your narrative intelligence assistant. Ask me about market beliefs, "
    "narrative conflicts, portfolio exposure, or what could break a thesis. "
    "You can also **upload a portfolio file** (CSV/XLSX) and I'll analyze its narrative exposure."
)
SUGGESTIONS = [
    "What narratives are most fragile right now?",
    "Explain my portfolio's exposure to AI",
    "What would break the soft landing thesis?",
    "Which narratives conflict with each other?",
]

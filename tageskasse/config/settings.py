# tageskasse/config/settings.py
import os

APP_NAME: str = "Tageskasse"
APP_VERSION: str = "v0.3"
SECRET_KEY: str = os.environ.get("TAGESKASSE_SECRET_KEY", "change-this-in-production-please-32bytes")
SESSION_COOKIE: str = "tk_session"

# DB-URL (sqlite Datei liegt unter ./db/)
DATABASE_URL: str = os.environ.get("TAGESKASSE_DATABASE_URL", "sqlite:///./db/tageskasse.db")

LOG_LEVEL: str = os.environ.get("TAGESKASSE_LOG_LEVEL", "INFO")

# Server (run_server.py)
HOST: str = os.environ.get("TAGESKASSE_HOST", "127.0.0.1")
PORT: int = int(os.environ.get("TAGESKASSE_PORT", "8000"))

PASSWORD_MIN_LENGTH: int = 6

# Waehrung fuer Berichte
CURRENCY: str = "SAR"

# Reset-Varianten und die exakt einzutippende Bestaetigung
RESET_DATA: str = "daten"
RESET_COMPLETE: str = "komplett"
RESET_PHRASES: dict[str, str] = {
    RESET_DATA: os.environ.get("TAGESKASSE_RESET_PHRASE_DATA", "Daten zuruecksetzen"),
    RESET_COMPLETE: os.environ.get("TAGESKASSE_RESET_PHRASE_COMPLETE", "Komplett zuruecksetzen"),
}

# Konfig-Key, der den ersten Admin markiert
ADMIN_BOOTSTRAP_KEY: str = "admin_bootstrap"

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Paths
BASE_DIR = Path(__file__).parent
DATA_DIR = BASE_DIR / "data"
DB_PATH = Path(os.getenv("VOICENOTES_DB_PATH", str(DATA_DIR / "voicenotes.db")))

# Database
DB_TIMEOUT = float(os.getenv("VOICENOTES_DB_TIMEOUT", "5.0"))  # seconds to wait on a busy writer

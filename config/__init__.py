from datetime import timezone
from dotenv import load_dotenv

load_dotenv()

UTC = timezone.utc

# product-name match score at or above which a basket mutation is performed directly
MATCH_THRESHOLD = 0.8

# messages kept per conversation on top of the pinned prefix
MAX_HISTORY_LENGTH = 10

import string

# Tiers that can open a checkout session
TIERS = ("basic", "premium", "customaccess", "request", "test")

# Access keys
ACCESS_KEY_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
ACCESS_KEY_LENGTH = 12

# Request input limits
MAX_FREE_TEXT_LENGTH = 60
MAX_SESSION_ID_LENGTH = 255
MAX_USERNAME_LENGTH = 60
DEFAULT_ENDPOINT = "web"
ENDPOINT_PATTERN = r"^[A-Za-z0-9_-]{1,32}$"

# Payment polling
POLL_ATTEMPTS = 4
POLL_DELAY_SECONDS = 2.0
CLAIM_POLL_DELAY_SECONDS = 1.5
PAID_STATUS = "paid"

# Stripe
CHECKOUT_COMPLETED_EVENT = "checkout.session.completed"
TEST_SESSION_PREFIX = "cs_test_"

# Idempotency ledger
LEDGER_TTL_SECONDS = 6 * 60 * 60

# Voice announcements
VOICE_TIMEOUT_MIN = 15.0
VOICE_TIMEOUT_MAX = 30.0
VOICE_TIMEOUT_SECONDS = 20.0
VOICE_READY_TIMEOUT_SECONDS = 10.0
VOICE_QUEUE_SIZE = 5
TEST_TONE_FREQUENCY = 440
TEST_TONE_SECONDS = 2
# discord voice transport: 48 kHz, stereo, signed 16-bit PCM
PCM_SAMPLE_RATE = 48000
PCM_CHANNELS = 2
FFMPEG_OPTIONS = f"-vn -ar {PCM_SAMPLE_RATE} -ac {PCM_CHANNELS} -f s16le"

# Stripe amounts in these currencies carry no minor unit
ZERO_DECIMAL_CURRENCIES = frozenset({
    "BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA",
    "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
})

# Embed colours
COLOR_PAYMENT = 0x22C55E
COLOR_KEY = 0x3B82F6
COLOR_ROLE = 0xFACC15

HTTP_TIMEOUT_SECONDS = 10

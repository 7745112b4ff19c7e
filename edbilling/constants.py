"""Application constants: Stripe, credit packages, HTTP and assessment limits."""

# --- Session ---
COOKIE_NAME = "edpsych_session"

# --- Stripe ---
STRIPE_API_VERSION = "2023-10-16"
STRIPE_APP_INFO = {"name": "EdPsych AI Education Platform", "version": "1.0.0"}
CREDIT_AMOUNT_METADATA_KEY = "creditAmount"

# --- Credit packages (credits per unit purchased) ---
CREDIT_PACKAGE_SIZES = {
    "small": 50,
    "medium": 150,
    "large": 500,
}

# --- HTTP Client ---
HTTP_TOTAL_TIMEOUT = 30  # seconds
HTTP_CONNECT_TIMEOUT = 10  # seconds
HTTP_USER_AGENT = "edpsych-billing/1.0"

# --- Assessment tools ---
ASSESSMENT_SEARCH_DEFAULT_LIMIT = 20
ASSESSMENT_SEARCH_MAX_LIMIT = 100
SUPPORTED_QUESTION_TYPES = ("multiple_choice", "true_false", "multiple_answer", "short_answer")

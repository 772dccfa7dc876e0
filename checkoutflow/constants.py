DEFAULT_STEP = "cart"

CREDIT_CARD_MIN_DIGITS = 13
CREDIT_CARD_MAX_DIGITS = 19

EMAIL_ERROR = "Invalid email format"

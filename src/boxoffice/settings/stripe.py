from decouple import config

DEFAULT_CURRENCY = config("DEFAULT_CURRENCY", "GBP")
STRIPE_SECRET_KEY = config("STRIPE_SECRET_KEY", default="sk_test_...")
STRIPE_PUBLISHABLE_KEY = config("STRIPE_PUBLISHABLE_KEY", default="pk_test_...")
STRIPE_STATEMENT_DESCRIPTOR = config("STRIPE_STATEMENT_DESCRIPTOR", default="BURNER TICKET")
# Only the idempotent PaymentIntent retrieval is retried; refunds and intent creation never are.
STRIPE_RETRIEVE_MAX_ATTEMPTS = config("STRIPE_RETRIEVE_MAX_ATTEMPTS", cast=int, default=3)
STRIPE_RETRIEVE_BACKOFF_SECONDS = config("STRIPE_RETRIEVE_BACKOFF_SECONDS", cast=float, default=0.5)

"""
Configuration settings for the crypto complaints pipeline.

Centralized configuration for fetching, filtering, categorization
and the batch classifier.
"""

import os
from pathlib import Path

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
DATA_ROOT = Path(os.getenv("COMPLAINTS_DATA_ROOT", PROJECT_ROOT / "data"))
OUTPUT_ROOT = Path(os.getenv("COMPLAINTS_OUTPUT_ROOT", PROJECT_ROOT / "output"))
COMPLAINTS_FILE = DATA_ROOT / "complaints.json"
CLASSIFICATIONS_FILE = DATA_ROOT / "classifications.json"

# CFPB complaint search API
API_BASE = "https://www.consumerfinance.gov/data-research/consumer-complaints/search/api/v1/"
USER_AGENT = "CryptoComplaintsDashboard/1.0"
PAGE_SIZE = 100
REQUEST_DELAY_SECONDS = 0.5
REQUEST_TIMEOUT_SECONDS = 30
FETCH_MAX_RETRIES = 3
FETCH_RETRY_DELAY_SECONDS = 2.0
FETCH_SUB_PRODUCT = "Virtual currency"

# Incremental refresh re-fetches this many days before the latest stored date
FETCH_OVERLAP_DAYS = int(os.getenv("FETCH_OVERLAP_DAYS", "7"))

# Companies requested from the API
FETCH_COMPANIES = [
    "Block, Inc.",
    "Coinbase, Inc.",
    "ROBINHOOD MARKETS INC.",
    "Foris DAX, Inc.",
    "Paypal Holdings, Inc",
    "Winklevoss Exchange LLC",
    "BAM Management US Holdings Inc.",
    "Payward Ventures Inc. dba Kraken",
    "Blockchain.com, Inc.",
    "Abra",
    "BlockFi Inc",
    "Paxos Trust Company, LLC",
    "Voyager Digital (Canada) Ltd.",
    "Celsius Network LLC",
    "FTX Trading Ltd.",
]

# Single-purpose crypto companies: every complaint is kept
PURE_CRYPTO_COMPANIES = frozenset([
    "Coinbase, Inc.",
    "Foris DAX, Inc.",
    "Winklevoss Exchange LLC",
    "BAM Management US Holdings Inc.",
    "Payward Ventures Inc. dba Kraken",
    "Blockchain.com, Inc.",
    "Abra",
    "BlockFi Inc",
    "Paxos Trust Company, LLC",
    "Voyager Digital (Canada) Ltd.",
    "Celsius Network LLC",
    "FTX Trading Ltd.",
])

# Multi-product companies: kept only for crypto-adjacent sub-products
MIXED_COMPANIES = frozenset([
    "Block, Inc.",
    "Paypal Holdings, Inc",
    "ROBINHOOD MARKETS INC.",
])

CRYPTO_SUB_PRODUCTS = frozenset([
    "Virtual currency",
    "Mobile or digital wallet",
    "Domestic (US) money transfer",
    "International money transfer",
    "Foreign currency exchange",
    "Other banking product or service",
    "Checking account",
    "Savings account",
    "General-purpose prepaid card",
    "General-purpose credit card or charge card",
    "I do not know",
])

# Narrative categorization
MIN_NARRATIVE_LENGTH = 50
TREND_WINDOW_DAYS = 30
FALLBACK_CATEGORY_ID = "other"

# Order matters: ties go to the category declared first
ISSUE_CATEGORIES = [
    {
        "id": "locked_account",
        "label": "Account Access",
        "keywords": ["locked", "lock", "access", "login", "disabled", "restricted", "suspended", "frozen"],
    },
    {
        "id": "verification",
        "label": "Verification Issues",
        "keywords": ["verification", "verify", "kyc", "identity", "documents", "id", "selfie", "photo"],
    },
    {
        "id": "withdrawal",
        "label": "Withdrawal Problems",
        "keywords": ["withdraw", "withdrawal", "transfer", "send", "funds", "money", "bank"],
    },
    {
        "id": "customer_service",
        "label": "Support Response",
        "keywords": ["no response", "customer service", "support", "response", "contact", "help",
                     "waiting", "ignored", "ticket"],
    },
    {
        "id": "fraud",
        "label": "Fraud/Scam Reports",
        "keywords": ["scam", "fraud", "stolen", "hacked", "unauthorized", "phishing", "hack"],
    },
    {
        "id": "fees",
        "label": "Fee Disputes",
        "keywords": ["fee", "fees", "charge", "charged", "cost", "expensive", "hidden"],
    },
    {
        "id": FALLBACK_CATEGORY_ID,
        "label": "Other",
        "keywords": [],
    },
]

# Batch classifier (Gemini)
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY", os.getenv("GEMINI_API_KEY", ""))
CLASSIFIER_MODEL = "gemini-2.0-flash-lite"
LLM_TEMPERATURE = 0.0
CLASSIFIER_BATCH_SIZE = 10
CLASSIFIER_RPM_LIMIT = 15
CLASSIFIER_BATCH_DELAY_SECONDS = 60.0 / CLASSIFIER_RPM_LIMIT
CLASSIFIER_MAX_RETRIES = 3
CLASSIFIER_RETRY_DELAY_SECONDS = 5.0
CLASSIFIER_MAX_NARRATIVE_CHARS = 1500

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")  # DEBUG, INFO, WARNING, ERROR
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE = "crypto_complaints.log"

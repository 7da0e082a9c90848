"""Application-wide constants.

This module centralizes the magic numbers of the content pipeline so that
every stage (browser, fetcher, cleaner, chunker, ranker) reads its policy
from a single place. Most values can be overridden through Settings.

Constants are organized by pipeline stage.
"""

# =============================================================================
# Browser Resources
# =============================================================================

# Pages pre-created on the shared browser; batches larger than this use the pool
MAX_CONCURRENT_PAGES = 5

# Upper bound on independent browser processes in the fallback pool
MAX_POOL_BROWSERS = 3

# Chromium launch flags for containerized environments
BROWSER_LAUNCH_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
)

# Default per-action timeout applied to every page (seconds)
PAGE_DEFAULT_TIMEOUT_SECONDS = 20.0

# =============================================================================
# Page Fetching
# =============================================================================

# Timeout for page.goto() (seconds)
NAVIGATION_TIMEOUT_SECONDS = 20.0

# Timeout wrapped around the whole fetch of one URL (seconds)
SCRAPE_TIMEOUT_SECONDS = 15.0

# Fixed wait after DOMContentLoaded to let deferred rendering finish (seconds)
PAGE_SETTLE_SECONDS = 1.0

# Content containers, most specific first; body is always the last resort
CONTENT_SELECTORS = (
    "article",
    "main",
    ".content",
    ".post-content",
    ".entry-content",
    ".article-content",
    '[role="main"]',
    "body",
)

# A selector's text must be longer than this to be accepted (chars)
MIN_CONTENT_LENGTH_CHARS = 100

# =============================================================================
# Text Cleaning
# =============================================================================

MIN_SENTENCE_LENGTH_CHARS = 30
MIN_SENTENCE_WORDS = 5
MAX_CAPITAL_RATIO = 0.3
MAX_DIGIT_RATIO = 0.2
MAX_PUNCTUATION_RATIO = 0.3

# =============================================================================
# Text Chunking (all sizes in words)
# =============================================================================

TARGET_CHUNK_SIZE_WORDS = 800
MIN_CHUNK_SIZE_WORDS = 300
MAX_CHUNK_SIZE_WORDS = 1200
CHUNK_OVERLAP_WORDS = 100

# How far from the target position each boundary type is searched
SECTION_SEARCH_WINDOW_WORDS = 50
PARAGRAPH_SEARCH_WINDOW_WORDS = 100
SENTENCE_SEARCH_WINDOW_WORDS = 50

# Section header detection
MAX_HEADER_LINE_CHARS = 100
MAX_HEADER_WORDS = 8

CHUNKING_STRATEGY = "smart_boundary_with_overlap"

# =============================================================================
# Query Analysis
# =============================================================================

# Queries shorter than this with at most SIMPLE_MAX_KEY_TERMS terms are simple
SIMPLE_MAX_QUERY_CHARS = 30
SIMPLE_MAX_KEY_TERMS = 2

# Queries longer than this or with more than COMPLEX_MIN_KEY_TERMS terms are complex
COMPLEX_MIN_QUERY_CHARS = 80
COMPLEX_MIN_KEY_TERMS = 5

MIN_KEY_TERM_CHARS = 3

# =============================================================================
# Relevance Scoring
# =============================================================================

SCORING_BATCH_SIZE = 8
MAX_CONCURRENT_SCORING_BATCHES = 3
SCORING_TIMEOUT_SECONDS = 60.0
SCORING_TEMPERATURE = 0.1

# Preview sent to the semantic scorer per chunk (chars)
CHUNK_PREVIEW_CHARS = 400

# Score given to chunks the scorer did not (or could not) judge
NEUTRAL_SCORE = 0.5

DEFAULT_SCORING_MODEL = "anthropic:claude-3-5-sonnet-latest"

# Composite score weights; relevance must dominate
RELEVANCE_WEIGHT = 0.5
QUALITY_WEIGHT = 0.3
DIVERSITY_WEIGHT = 0.1
POSITION_WEIGHT = 0.1

# Floors and slopes of the diversity/position heuristics
DIVERSITY_FLOOR = 0.3
DIVERSITY_PENALTY_PER_CHUNK = 0.2
POSITION_FLOOR = 0.3
POSITION_PENALTY_PER_STEP = 0.1

# All three must pass for a chunk to survive filtering
MIN_RELEVANCE_SCORE = 0.4
MIN_QUALITY_SCORE = 0.3
MIN_FINAL_SCORE = 0.5

# Ranked chunks returned per query complexity
SIMPLE_QUERY_CHUNK_LIMIT = 3
MODERATE_QUERY_CHUNK_LIMIT = 4
COMPLEX_QUERY_CHUNK_LIMIT = 5

FILTERING_STRATEGY = "semantic_relevance_with_quality_filtering"

# =============================================================================
# Web Search
# =============================================================================

SERPER_SEARCH_URL = "https://google.serper.dev/search"
DEFAULT_SEARCH_RESULT_LIMIT = 5
SEARCH_TIMEOUT_SECONDS = 10.0

"""Heuristic cleaning of text extracted from web pages.

Extracted page text still carries script fragments, navigation chrome,
tracking tokens and words merged by DOM text concatenation. ContentCleaner
runs six narrowly scoped passes over it:

1. Script artifacts (function calls, assignments, literals, operators)
2. Navigation and UI chrome (menus, calls to action, footers, forms)
3. Metadata and tracking (tracking tokens, attributes, URLs, emails)
4. Structural repair (merged words, spacing, paragraph breaks)
5. Sentence quality filter
6. Final cleanup (stray letters, punctuation, capitalization)

Passes 1-3 are declarative tables of CleaningRule entries so each rule can
be tested and extended on its own.
"""

import re
import time
from typing import List, NamedTuple

import logfire

from research_pipeline.constants import (
    MAX_CAPITAL_RATIO,
    MAX_DIGIT_RATIO,
    MAX_PUNCTUATION_RATIO,
    MIN_SENTENCE_LENGTH_CHARS,
    MIN_SENTENCE_WORDS,
)
from research_pipeline.models.content_models import CleanedDocument
from research_pipeline.models.scraper_models import ScrapedDocument


class ContentCleaningError(Exception):
    """Raised when cleaning fails unexpectedly."""

    pass


class CleaningRule(NamedTuple):
    """A named regex rewrite.

    Attributes:
        name: Identifier used in tests and logs.
        pattern: Regular expression to search for.
        replacement: Replacement text (empty string removes the match).
        flags: re flags for compilation.
    """

    name: str
    pattern: str
    replacement: str = " "
    flags: int = 0


# Labels that show up as site menus when a nav bar is flattened to text
_MENU_LABEL = (
    r"(?:Home|About(?: [Uu]s)?|Blog|Pricing|Products|Solutions|Resources|Docs|"
    r"Documentation|Support|Contact(?: [Uu]s)?|Overview|Features|Careers|News|"
    r"Log ?in|Sign ?in|Sign ?up|FAQ|Partners|Customers|Company)"
)
_SOCIAL_NETWORK = r"(?:LinkedIn|Facebook|Twitter|Instagram|YouTube|TikTok|GitHub|X)"


class ParagraphFilterResult(NamedTuple):
    """Result of filtering one paragraph.

    Attributes:
        text: Surviving sentences joined with spaces.
        kept: Number of sentences kept.
        dropped: Number of sentences dropped.
    """

    text: str
    kept: int
    dropped: int


class ContentCleaner:
    """Turn noisy extracted page text into prose suitable for chunking.

    Cleaning is a signal-to-noise improvement for the scorer, not exact
    extraction. Paragraph breaks ("\\n\\n") survive every pass so the chunker
    can use them as boundaries.
    """

    # Pass 1: residual JavaScript
    SCRIPT_ARTIFACT_RULES: List[CleaningRule] = [
        CleaningRule("window_call", r"window\.[\w$.]*\([^)]*\)[^;\n]{0,80};?"),
        CleaningRule(
            "function_declaration",
            r"\bfunction\s+[A-Za-z_$][\w$]*\s*\([^()\n]*\)\s*\{?",
        ),
        CleaningRule("function_call", r"\b[A-Za-z_$][\w$.]*\([^()\n]*\)\s*[{;]?"),
        CleaningRule("assignment", r"\b[A-Za-z_$][\w$.]*\s*=\s*[^;\n]{1,200};"),
        CleaningRule("object_literal", r"\{[^{}]*\}"),
        CleaningRule("array_literal", r"\[[^\[\]]*\]"),
        CleaningRule(
            "declaration",
            r"\b(?:var|let|const)\s+[A-Za-z_$][\w$]*\s*(?==|;|$)",
            flags=re.MULTILINE,
        ),
        CleaningRule("arrow", r"=>"),
        CleaningRule("strict_equality", r"[!=]=="),
        CleaningRule("logical_operator", r"\|\||&&"),
        CleaningRule("semicolon", r";+"),
    ]

    # Pass 2: navigation and UI chrome
    NAVIGATION_RULES: List[CleaningRule] = [
        CleaningRule("menu_token", r"\bmenu[A-Z][a-zA-Z]+"),
        # Only runs of two or more labels; a lone "Home" may be prose
        CleaningRule(
            "menu_run",
            rf"\b{_MENU_LABEL}(?:\s*[|/>·•-]?\s*{_MENU_LABEL}\b)+",
        ),
        CleaningRule(
            "call_to_action",
            r"\b(?:get started(?: for free)?|click here|read more|learn more|see all|"
            r"view all|try (?:it )?(?:now|for free)|sign up(?: for free)?|"
            r"subscribe now|download now|stay informed|book a demo|contact us)\b",
            flags=re.IGNORECASE,
        ),
        CleaningRule(
            "footer_boilerplate",
            r"\b(?:privacy policy|terms (?:of (?:service|use)|and conditions)|"
            r"cookie (?:policy|settings|preferences)|all rights reserved)\b",
            flags=re.IGNORECASE,
        ),
        CleaningRule(
            "copyright",
            r"(?:©|\bcopyright\b)\s*(?:\d{4}(?:\s*[-–]\s*\d{4})?)?",
            flags=re.IGNORECASE,
        ),
        CleaningRule(
            "social_prompt",
            r"\b(?:follow us(?: on)?|share (?:this(?: article| post)?|on)|tweet this)\b",
            flags=re.IGNORECASE,
        ),
        CleaningRule(
            "social_run",
            rf"\b{_SOCIAL_NETWORK}(?:[\s,|/]+{_SOCIAL_NETWORK}\b)+",
        ),
        CleaningRule(
            "promotional_credit",
            r"\$\d+(?:\s+in)?(?:\s+free)?\s+(?:credits?|trial|offer)\b",
            flags=re.IGNORECASE,
        ),
        CleaningRule(
            "form_prompt",
            r"\b(?:enter your email(?: address)?|your email address|"
            r"subscribe to (?:our|the) newsletter|email address)\b",
            flags=re.IGNORECASE,
        ),
    ]

    # Pass 3: metadata and tracking
    TRACKING_RULES: List[CleaningRule] = [
        CleaningRule("url", r"\bhttps?://\S+"),
        CleaningRule("www_host", r"\bwww\.\S+"),
        CleaningRule(
            "email",
            r"(?<![\w.%+-])[A-Za-z0-9._%+-]{1,64}@[A-Za-z0-9.-]{1,255}\.[A-Za-z]{2,}",
        ),
        CleaningRule("track_token", r"\btrack-[\w-]+"),
        CleaningRule("utm_param", r"\butm_[\w-]+(?:=\S*)?"),
        CleaningRule("data_attribute", r"\bdata-[\w-]+(?:=(?:\"[^\"]*\"|'[^']*'|\S+))?"),
        CleaningRule(
            "css_attribute",
            r"\b(?:class|id|style)\s*=\s*(?:\"[^\"]*\"|'[^']*'|\S+)",
            flags=re.IGNORECASE,
        ),
        CleaningRule("schema_markup", r"\bschema\.org\S*|\b(?:itemscope|itemtype|itemprop)\b"),
    ]

    # Sentences matching any of these are dropped in the quality pass
    PROMOTIONAL_SENTENCE_PATTERNS: List[tuple[str, str]] = [
        (
            r"\b(?:free trial|sign up|get started|contact us|learn more|buy now)\b",
            "call_to_action",
        ),
        (r"\b(?:subscribe|newsletter|unsubscribe)\b", "newsletter"),
        (
            r"\$\d+(?:\.\d+)?\s*(?:/\s*|per\s+)(?:mo(?:nth)?|yr|year|user|seat)\b",
            "pricing",
        ),
    ]

    # Capitalized sentence with a modal or copula: likely a new topic
    _TOPIC_SENTENCE_RE = re.compile(
        r"([.!?])[ \t]+(?=[A-Z][^.!?\n]*?\b(?:is|are|can|will|should|would|could|may|might)\b)"
    )
    _CAMEL_MERGE_RE = re.compile(r"(?<=[a-z]{2})(?=[A-Z][a-z])")
    _MISSING_SENTENCE_SPACE_RE = re.compile(r"(?<=[a-z0-9][.!?])(?=[A-Z][a-z])")
    _REPEATED_PUNCTUATION = [
        (re.compile(r"\.{2,}"), "."),
        (re.compile(r",{2,}"), ","),
        (re.compile(r"!{2,}"), "!"),
        (re.compile(r"\?{2,}"), "?"),
    ]
    _PARAGRAPH_SPLIT_RE = re.compile(r"\n[ \t]*\n\s*")
    _SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
    _STRAY_LETTER_RE = re.compile(r"(?<= )(?![aAI] )[A-Za-z] ")
    _SPACE_BEFORE_PUNCTUATION_RE = re.compile(r"[ \t]+([,.!?;:])")
    _MISSING_SPACE_AFTER_PUNCTUATION_RE = re.compile(r"([,!?])(?=[A-Za-z])")
    _SENTENCE_START_RE = re.compile(r"(^|[.!?][ \t]+)([a-z])", re.MULTILINE)

    def __init__(self) -> None:
        """Initialize the cleaner with compiled rule tables."""
        self._script_rules = self._compile(self.SCRIPT_ARTIFACT_RULES)
        self._navigation_rules = self._compile(self.NAVIGATION_RULES)
        self._tracking_rules = self._compile(self.TRACKING_RULES)
        self._promotional_patterns = [
            (re.compile(pattern, re.IGNORECASE), name)
            for pattern, name in self.PROMOTIONAL_SENTENCE_PATTERNS
        ]

    @staticmethod
    def _compile(rules: List[CleaningRule]) -> List[tuple[str, re.Pattern[str], str]]:
        return [
            (rule.name, re.compile(rule.pattern, rule.flags), rule.replacement)
            for rule in rules
        ]

    def clean(self, raw_text: str, title: str = "", url: str = "") -> CleanedDocument:
        """Run all cleaning passes over one document's text.

        Args:
            raw_text: Text extracted from the page
            title: Page title (carried through to the result)
            url: Page URL (carried through to the result)

        Returns:
            CleanedDocument with length and reduction metadata

        Raises:
            ContentCleaningError: If a pass fails unexpectedly
        """
        started = time.perf_counter()
        if not isinstance(raw_text, str):
            raise ContentCleaningError(
                f"Expected text to clean, got {type(raw_text).__name__}"
            )

        try:
            text = self._normalize_layout(raw_text)
            text = self.apply_rules(text, self._script_rules)
            text = self.apply_rules(text, self._navigation_rules)
            text = self.apply_rules(text, self._tracking_rules)
            text = self.repair_structure(text)
            text = self.filter_quality(text)
            text = self.final_cleanup(text)
        except Exception as e:
            logfire.error(
                "Content cleaning failed",
                url=url,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ContentCleaningError(f"Content cleaning failed: {e}") from e

        original_length = len(raw_text)
        cleaned_length = len(text)
        reduction = (
            round((original_length - cleaned_length) / original_length * 100)
            if original_length
            else 0
        )
        processing_time_ms = int((time.perf_counter() - started) * 1000)

        logfire.info(
            "Content cleaned",
            url=url,
            original_length=original_length,
            cleaned_length=cleaned_length,
            reduction_percentage=reduction,
            processing_time_ms=processing_time_ms,
        )
        return CleanedDocument(
            url=url,
            title=title,
            content=text,
            original_length=original_length,
            cleaned_length=cleaned_length,
            reduction_percentage=reduction,
            processing_time_ms=processing_time_ms,
        )

    def clean_document(self, document: ScrapedDocument) -> CleanedDocument:
        """Clean a scraped document, keeping its raw text if cleaning fails."""
        try:
            return self.clean(document.raw_content, document.title, document.url)
        except ContentCleaningError as e:
            logfire.warn(
                "Using uncleaned content after cleaning failure",
                url=document.url,
                error=str(e),
            )
            raw_content = document.raw_content or ""
            return CleanedDocument(
                url=document.url,
                title=document.title,
                content=raw_content,
                original_length=len(raw_content),
                cleaned_length=len(raw_content),
                reduction_percentage=0,
                processing_time_ms=0,
                used_fallback=True,
            )

    def clean_many(self, documents: List[ScrapedDocument]) -> List[CleanedDocument]:
        """Clean documents independently; one failure never affects the others."""
        return [self.clean_document(document) for document in documents]

    # =========================================================================
    # Passes
    # =========================================================================

    @staticmethod
    def apply_rules(
        text: str, rules: List[tuple[str, re.Pattern[str], str]]
    ) -> str:
        """Apply compiled rules in order, then tidy the spaces they leave behind."""
        for _, pattern, replacement in rules:
            text = pattern.sub(replacement, text)
        return ContentCleaner._collapse_spaces(text)

    def repair_structure(self, text: str) -> str:
        """Split merged words, fix spacing and punctuation, add paragraph breaks."""
        text = self._CAMEL_MERGE_RE.sub(" ", text)
        text = self._MISSING_SENTENCE_SPACE_RE.sub(" ", text)
        for pattern, replacement in self._REPEATED_PUNCTUATION:
            text = pattern.sub(replacement, text)
        text = self._collapse_spaces(text)
        text = self._TOPIC_SENTENCE_RE.sub(r"\1\n\n", text)
        return text.strip()

    def filter_quality(self, text: str) -> str:
        """Drop low-quality sentences paragraph by paragraph."""
        paragraphs = []
        kept = dropped = 0
        for paragraph in self._PARAGRAPH_SPLIT_RE.split(text):
            result = self.filter_paragraph(paragraph)
            kept += result.kept
            dropped += result.dropped
            if result.text:
                paragraphs.append(result.text)

        logfire.debug("Sentence quality filter", kept=kept, dropped=dropped)
        return "\n\n".join(paragraphs)

    def filter_paragraph(self, paragraph: str) -> ParagraphFilterResult:
        sentences = [
            sentence.strip()
            for sentence in self._SENTENCE_SPLIT_RE.split(paragraph)
            if sentence.strip()
        ]
        survivors = [sentence for sentence in sentences if self.is_quality_sentence(sentence)]
        return ParagraphFilterResult(
            text=" ".join(survivors),
            kept=len(survivors),
            dropped=len(sentences) - len(survivors),
        )

    def is_quality_sentence(self, sentence: str) -> bool:
        """Check a sentence against the length, ratio and promotional heuristics.

        Terminal punctuation is ignored when measuring.
        """
        body = sentence.strip().rstrip(".!?").strip()
        length = len(body)
        if length < MIN_SENTENCE_LENGTH_CHARS:
            return False
        if len(body.split()) < MIN_SENTENCE_WORDS:
            return False

        capitals = sum(1 for char in body if "A" <= char <= "Z")
        if capitals / length > MAX_CAPITAL_RATIO:
            return False

        digits = sum(1 for char in body if char.isdigit())
        if digits / length > MAX_DIGIT_RATIO:
            return False

        punctuation = sum(
            1 for char in body if not (char.isalnum() or char == "_" or char.isspace())
        )
        if punctuation / length > MAX_PUNCTUATION_RATIO:
            return False

        return not any(pattern.search(body) for pattern, _ in self._promotional_patterns)

    def final_cleanup(self, text: str) -> str:
        """Remove stray letters, fix punctuation and capitalization, end with a period."""
        text = self._STRAY_LETTER_RE.sub("", text)
        text = self._SPACE_BEFORE_PUNCTUATION_RE.sub(r"\1", text)
        text = self._MISSING_SPACE_AFTER_PUNCTUATION_RE.sub(r"\1 ", text)
        text = self._SENTENCE_START_RE.sub(
            lambda m: m.group(1) + m.group(2).upper(), text
        )
        text = self._collapse_spaces(text).strip()
        if text and text[-1] not in ".!?":
            text += "."
        return text

    # =========================================================================
    # Whitespace helpers
    # =========================================================================

    @classmethod
    def _normalize_layout(cls, text: str) -> str:
        """Normalize line endings; keep blank-line paragraph breaks only."""
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        paragraphs = cls._PARAGRAPH_SPLIT_RE.split(text)
        return "\n\n".join(
            " ".join(paragraph.split()) for paragraph in paragraphs if paragraph.strip()
        )

    @staticmethod
    def _collapse_spaces(text: str) -> str:
        text = re.sub(r"[ \t\f\v]+", " ", text)
        text = re.sub(r" *\n *", "\n", text)
        text = re.sub(r"\n{3,}", "\n\n", text)
        # Lone newlines are layout noise, not paragraph breaks
        return re.sub(r"(?<!\n)\n(?!\n)", " ", text)

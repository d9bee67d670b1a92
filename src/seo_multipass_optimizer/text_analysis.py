"""
Rule-based text metrics used by the issue detector.

All functions here are pure:
- HTML handling: strip_html, extract_headings, extract_images
- Counting: count_words, split_sentences, count_phrase
- SEO metrics: keyword_density, subheading_keyword_usage
- Readability: analyze_passive_voice, analyze_sentence_length,
  analyze_transition_words
- Title uniqueness: normalize_title, title_similarity, find_similar_titles
"""

import re
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from typing import Iterable, Optional

from bs4 import BeautifulSoup


WORD_PATTERN = re.compile(r"[^\W_]+(?:['’-][^\W_]+)*")
SENTENCE_SPLIT_PATTERN = re.compile(r"[.!?]+")
WHITESPACE_PATTERN = re.compile(r"\s+")

# Auxiliary + past participle constructions
PASSIVE_PATTERNS = [
    re.compile(r"\b(am|is|are|was|were|being|been)\s+\w+(ed|en)\b", re.IGNORECASE),
    re.compile(r"\b(have|has|had)\s+been\s+\w+(ed|en)\b", re.IGNORECASE),
    re.compile(r"\b(will|would|could|should|might)\s+be\s+\w+(ed|en)\b", re.IGNORECASE),
]

IRREGULAR_PARTICIPLES = [
    "given", "taken", "written", "spoken", "broken", "chosen", "driven",
    "eaten", "fallen", "forgotten", "hidden", "known", "seen", "shown",
    "thrown", "worn",
]

IRREGULAR_PASSIVE_PATTERN = re.compile(
    r"\b(am|is|are|was|were|be|being|been)\s+(" + "|".join(IRREGULAR_PARTICIPLES) + r")\b",
    re.IGNORECASE,
)

TRANSITION_CATEGORIES: dict[str, list[str]] = {
    "addition": [
        "also", "additionally", "furthermore", "moreover", "besides",
        "in addition", "as well as", "along with", "not only", "plus",
    ],
    "contrast": [
        "however", "nevertheless", "nonetheless", "on the other hand",
        "in contrast", "conversely", "although", "though", "despite",
        "while", "whereas", "but", "yet", "still",
    ],
    "cause_effect": [
        "therefore", "consequently", "as a result", "thus", "hence",
        "accordingly", "for this reason", "because of this", "due to",
        "since", "because", "so",
    ],
    "sequence": [
        "first", "second", "third", "next", "then", "after", "before",
        "finally", "lastly", "meanwhile", "subsequently", "previously",
        "initially", "ultimately", "eventually",
    ],
    "example": [
        "for example", "for instance", "such as", "including",
        "specifically", "in particular", "namely", "that is",
        "to illustrate", "as an example",
    ],
    "emphasis": [
        "indeed", "certainly", "obviously", "clearly", "undoubtedly",
        "without doubt", "in fact", "actually", "definitely",
        "absolutely", "particularly", "especially",
    ],
    "summary": [
        "in conclusion", "to conclude", "in summary", "to summarize",
        "overall", "in general", "on the whole", "all in all",
        "to sum up", "in short", "briefly",
    ],
    "comparison": [
        "similarly", "likewise", "in the same way", "equally",
        "compared to", "in comparison", "just as", "like",
        "correspondingly", "by the same token",
    ],
}

TITLE_STOP_WORDS = {
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by",
}


def _compile_transitions() -> list[tuple[str, str, re.Pattern]]:
    compiled = []
    for category, phrases in TRANSITION_CATEGORIES.items():
        for phrase in phrases:
            pattern = re.compile(r"\b" + re.escape(phrase) + r"\b", re.IGNORECASE)
            compiled.append((category, phrase, pattern))
    # Longest phrases first so "in addition" wins over "in"
    compiled.sort(key=lambda item: len(item[1]), reverse=True)
    return compiled


_TRANSITIONS = _compile_transitions()


# =============================================================================
# HTML helpers
# =============================================================================


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def strip_html(html: Optional[str]) -> str:
    """Return the visible text of an HTML fragment with collapsed whitespace."""
    if not html:
        return ""
    text = _soup(html).get_text(separator=" ")
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def extract_headings(html: Optional[str], levels: Iterable[int] = range(1, 7)) -> list[tuple[int, str]]:
    """Return (level, text) for every heading of the given levels, in order."""
    wanted = [f"h{level}" for level in levels]
    headings = []
    for tag in _soup(html).find_all(wanted):
        headings.append((int(tag.name[1]), tag.get_text(separator=" ", strip=True)))
    return headings


def extract_images(html: Optional[str]) -> list[dict[str, str]]:
    """Return src/alt for every <img> tag. Missing alt is an empty string."""
    images = []
    for tag in _soup(html).find_all("img"):
        images.append({
            "src": tag.get("src") or "",
            "alt": tag.get("alt") or "",
        })
    return images


# =============================================================================
# Counting
# =============================================================================


def count_words(text: Optional[str]) -> int:
    """Count words in plain text."""
    if not text:
        return 0
    return len(WORD_PATTERN.findall(text))


def split_sentences(text: Optional[str], min_length: int = 10) -> list[str]:
    """
    Split plain text into sentences on terminal punctuation.

    Fragments of ``min_length`` characters or fewer are dropped; they are
    usually list labels or abbreviations rather than sentences.
    """
    if not text:
        return []
    sentences = []
    for fragment in SENTENCE_SPLIT_PATTERN.split(text):
        fragment = fragment.strip()
        if len(fragment) > min_length:
            sentences.append(fragment)
    return sentences


def count_phrase(text: Optional[str], phrase: Optional[str]) -> int:
    """Count case-insensitive, word-bounded occurrences of a phrase."""
    if not text or not phrase or not phrase.strip():
        return 0
    pattern = r"\b" + re.escape(phrase.strip()) + r"\b"
    return len(re.findall(pattern, text, re.IGNORECASE))


def contains_phrase(text: Optional[str], phrase: Optional[str]) -> bool:
    """Case-insensitive substring check that tolerates empty inputs."""
    if not text or not phrase:
        return False
    return phrase.lower() in text.lower()


# =============================================================================
# SEO metrics
# =============================================================================


@dataclass
class DensityResult:
    """Keyword density of a text."""
    overall_density: float
    keyword_count: int
    total_words: int
    per_keyword: dict[str, int] = field(default_factory=dict)


def keyword_density(
    text: Optional[str],
    focus_keyword: Optional[str],
    secondary_keywords: Iterable[str] = (),
) -> DensityResult:
    """
    Calculate keyword density for plain text.

    density = (focus + secondary phrase occurrences) / words * 100,
    rounded to 2 decimals.
    """
    total_words = count_words(text)
    per_keyword: dict[str, int] = {}
    for keyword in [focus_keyword, *secondary_keywords]:
        if keyword and keyword.strip() and keyword not in per_keyword:
            per_keyword[keyword] = count_phrase(text, keyword)

    keyword_count = sum(per_keyword.values())
    density = (keyword_count / total_words) * 100 if total_words else 0.0
    return DensityResult(
        overall_density=round(density, 2),
        keyword_count=keyword_count,
        total_words=total_words,
        per_keyword=per_keyword,
    )


def subheading_keyword_usage(html: Optional[str], keyword: Optional[str]) -> float:
    """Percentage of H2-H6 subheadings that contain the keyword."""
    subheadings = extract_headings(html, levels=range(2, 7))
    if not subheadings or not keyword:
        return 0.0
    matching = sum(1 for _, text in subheadings if contains_phrase(text, keyword))
    return round(matching / len(subheadings) * 100, 2)


# =============================================================================
# Readability
# =============================================================================


@dataclass
class SentenceMetric:
    """Readability metric expressed as a share of sentences."""
    total_sentences: int
    matching_sentences: int
    percentage: float
    details: list[dict] = field(default_factory=list)


def analyze_passive_voice(text: Optional[str]) -> SentenceMetric:
    """Detect passive constructions and report the share of passive sentences."""
    sentences = split_sentences(text)
    details = []
    for index, sentence in enumerate(sentences):
        matched = [m.group(0) for p in PASSIVE_PATTERNS for m in p.finditer(sentence)]
        matched.extend(m.group(0) for m in IRREGULAR_PASSIVE_PATTERN.finditer(sentence))
        if matched:
            details.append({
                "sentence_index": index,
                "sentence": sentence,
                "patterns": sorted(set(matched)),
            })

    total = len(sentences)
    percentage = round(len(details) / total * 100, 2) if total else 0.0
    return SentenceMetric(total, len(details), percentage, details)


def analyze_sentence_length(text: Optional[str], max_words: int = 20) -> SentenceMetric:
    """Report sentences longer than ``max_words`` words."""
    sentences = split_sentences(text, min_length=5)
    details = []
    for index, sentence in enumerate(sentences):
        words = count_words(sentence)
        if words > max_words:
            details.append({
                "sentence_index": index,
                "sentence": sentence,
                "word_count": words,
            })

    total = len(sentences)
    percentage = round(len(details) / total * 100, 2) if total else 0.0
    return SentenceMetric(total, len(details), percentage, details)


def find_transitions(sentence: str) -> list[tuple[str, str]]:
    """Return (category, phrase) for every transition phrase in a sentence."""
    found = []
    for category, phrase, pattern in _TRANSITIONS:
        if pattern.search(sentence):
            found.append((category, phrase))
    return found


def analyze_transition_words(text: Optional[str]) -> SentenceMetric:
    """Report the share of sentences containing at least one transition word."""
    sentences = split_sentences(text)
    details = []
    for index, sentence in enumerate(sentences):
        transitions = find_transitions(sentence)
        if transitions:
            details.append({
                "sentence_index": index,
                "categories": sorted({category for category, _ in transitions}),
                "transitions": [phrase for _, phrase in transitions],
            })

    total = len(sentences)
    percentage = round(len(details) / total * 100, 2) if total else 0.0
    return SentenceMetric(total, len(details), percentage, details)


# =============================================================================
# Title uniqueness
# =============================================================================


def normalize_title(title: Optional[str]) -> str:
    """Lower-case, drop stop words and punctuation, collapse whitespace."""
    words = [w for w in (title or "").lower().split(" ") if w.strip() and w.strip() not in TITLE_STOP_WORDS]
    normalized = re.sub(r"[^\w\s]", "", " ".join(words))
    return WHITESPACE_PATTERN.sub(" ", normalized).strip()


def _jaccard(first: set, second: set) -> float:
    if not first and not second:
        return 1.0
    if not first or not second:
        return 0.0
    return len(first & second) / len(first | second)


def _bigrams(text: str) -> set[str]:
    return {text[i:i + 2] for i in range(len(text) - 1)}


def title_similarity(first: Optional[str], second: Optional[str]) -> float:
    """
    Similarity of two titles in [0, 1].

    Weighted blend of character sequence ratio (0.3), word Jaccard (0.4) and
    character bigram Jaccard (0.3) over normalized titles.
    """
    a = normalize_title(first)
    b = normalize_title(second)
    if a == b:
        return 1.0

    sequence = SequenceMatcher(None, a, b).ratio()
    words = _jaccard(set(a.split(" ")) - {""}, set(b.split(" ")) - {""})
    bigrams = _jaccard(_bigrams(a), _bigrams(b))

    return round(sequence * 0.3 + words * 0.4 + bigrams * 0.3, 3)


def find_similar_titles(
    title: Optional[str],
    existing_titles: Iterable[str],
    threshold: float = 0.85,
) -> list[dict]:
    """Existing titles at or above the similarity threshold, most similar first."""
    matches = []
    for existing in existing_titles:
        score = title_similarity(title, existing)
        if score >= threshold:
            matches.append({"title": existing, "similarity": score})
    matches.sort(key=lambda match: match["similarity"], reverse=True)
    return matches

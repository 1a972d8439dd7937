"""Query analysis: technical terms, term filtering, stemming and synonym expansion."""

import re
import string
import threading
from functools import lru_cache
from types import MappingProxyType

import snowballstemmer
from stop_words import get_stop_words

_SPLIT_RE = re.compile(f"[\\s{re.escape(string.punctuation)}]+")
_TRIM_RE = re.compile(r"^[^\w-]+|[^\w-]+$")


def is_technical_term(term: str) -> bool:
    """Detect structural identifiers such as FastEmbed, fast_embed, gpt-4 or file.rs.

    Purely structural: internal capitals, separators, digits/special
    characters or a file extension. No dictionary lookup is involved.
    """
    has_internal_caps = any(c.isupper() for c in term[1:])
    has_separator = "_" in term or "-" in term
    has_special = any(not c.isalpha() and not c.isspace() for c in term)
    is_file = "." in term
    return has_internal_caps or has_separator or has_special or is_file


def extract_technical_terms(query: str) -> list[str]:
    """Technical terms of the query, original casing, before stop-word filtering."""
    return [term for term in query.split() if is_technical_term(term)]


class TermAnalyzer:
    """Stemmer and stop-word list for one language.

    Snowball stemmer objects keep per-call state, so each thread gets its own.
    """

    def __init__(self, language: str = "english"):
        self.language = language
        self.stop_words = frozenset(get_stop_words(language))
        # Fail early on unsupported languages
        snowballstemmer.stemmer(language)
        self._local = threading.local()

    def _stemmer(self):
        stemmer = getattr(self._local, "stemmer", None)
        if stemmer is None:
            stemmer = snowballstemmer.stemmer(self.language)
            self._local.stemmer = stemmer
        return stemmer

    def stem(self, word: str) -> str:
        return self._stemmer().stemWord(word)

    def stem_words(self, words: list[str]) -> list[str]:
        return self._stemmer().stemWords(words)

    def is_stop_word(self, word: str) -> bool:
        return word in self.stop_words

    def filter_terms(self, query: str) -> list[str]:
        """Lower-cased query terms worth scoring.

        A term is kept when it is technical, or longer than two characters and
        not a stop word.
        """
        return [
            term
            for term in query.lower().split()
            if is_technical_term(term) or (len(term) > 2 and not self.is_stop_word(term))
        ]


@lru_cache(maxsize=8)
def get_analyzer(language: str = "english") -> TermAnalyzer:
    """Get the analyzer for a language (cached)."""
    return TermAnalyzer(language)


def filter_query_terms(query: str, language: str = "english") -> list[str]:
    return get_analyzer(language).filter_terms(query)


def _synonym_table(entries: list[tuple[tuple[str, ...], tuple[str, ...]]]) -> MappingProxyType:
    table: dict[str, tuple[str, ...]] = {}
    for keys, synonyms in entries:
        for key in keys:
            table[key] = synonyms
    return MappingProxyType(table)


# Curated domain vocabulary: performance, reliability, infra, auth, retrieval
QUERY_SYNONYMS = _synonym_table([
    (("slow", "slowness"), ("latency", "lag", "bottleneck", "performance")),
    (("latency",), ("slow", "delay", "lag", "throughput")),
    (("lag",), ("latency", "slow", "delay")),
    (("performance",), ("latency", "throughput", "optimization", "profiling")),
    (("bottleneck",), ("slow", "constraint", "latency")),
    (("optimize", "optimization"), ("improve", "tune", "refine")),
    (("improve", "improvement"), ("optimize", "enhance", "refine")),
    (("quality",), ("relevance", "accuracy", "precision")),
    (("error", "errors"), ("bug", "failure", "exception", "crash")),
    (("bug", "bugs"), ("defect", "issue", "error")),
    (("failure", "fail", "failed"), ("error", "fault", "crash")),
    (("crash", "panic"), ("failure", "exception", "bug")),
    (("timeout", "timeouts"), ("hang", "delay", "latency")),
    (("hang", "hung"), ("freeze", "timeout", "deadlock")),
    (("memory",), ("ram", "heap", "allocation")),
    (("cpu",), ("processor", "core", "utilization")),
    (("network",), ("latency", "connectivity", "bandwidth")),
    (("api", "apis"), ("endpoint", "service", "request")),
    (("endpoint", "endpoints"), ("api", "route", "service")),
    (("auth", "authentication"), ("login", "token", "credentials")),
    (("token", "tokens"), ("auth", "credential", "session")),
    (("deploy", "deployment"), ("release", "ship", "rollout")),
    (("release", "rollout"), ("deploy", "ship", "launch")),
    (("search",), ("retrieval", "lookup", "query")),
    (("query", "queries"), ("search", "lookup", "prompt")),
    (("index", "indexing"), ("catalog", "ingest", "register")),
    (("embedding", "embeddings"), ("vector", "semantic", "representation")),
    (("rerank", "reranker"), ("rescore", "rank", "cross-encoder")),
    (("similarity",), ("distance", "match", "closeness")),
    (("diagnose",), ("debug", "investigate", "triage")),
    (("debug",), ("diagnose", "investigate", "trace")),
    (("latencies",), ("slow", "delay", "throughput")),
    (("throughput",), ("performance", "latency", "capacity")),
])


def expand_query_terms(query: str) -> list[str]:
    """Synonyms of the query's tokens that the query does not already contain.

    Used by callers to widen recall when building a ranking query; scoring
    itself never expands.
    """
    tokens: list[str] = []
    for raw in _SPLIT_RE.split(query):
        normalized = _TRIM_RE.sub("", raw).lower()
        if normalized and normalized not in tokens:
            tokens.append(normalized)

    extras: list[str] = []
    seen = set(tokens)
    for token in tokens:
        for synonym in QUERY_SYNONYMS.get(token, ()):
            if synonym not in seen:
                seen.add(synonym)
                extras.append(synonym)

    return extras


def expanded_query(query: str) -> str:
    """The query followed by its synonym expansion."""
    extras = expand_query_terms(query)
    if not extras:
        return query
    return f"{query} {' '.join(extras)}"

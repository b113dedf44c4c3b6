"""Matching a spoken transcript against the live scene's choices."""

import re

from .models import Choice

ORDINALS = {
    "one": 0, "first": 0, "1": 0, "1st": 0,
    "two": 1, "second": 1, "2": 1, "2nd": 1,
    "three": 2, "third": 2, "3": 2, "3rd": 2,
    "four": 3, "fourth": 3, "4": 3, "4th": 3,
    "five": 4, "fifth": 4, "5": 4, "5th": 4,
}

# Words that frame a pick without naming it ("I'll take option two please")
_FILLER = frozenset({
    "i", "ill", "i'll", "id", "i'd", "will", "want", "take", "pick", "choose",
    "select", "go", "with", "for", "the", "option", "choice", "number", "please",
    "lets", "let's", "do",
})

_STOPWORDS = frozenset({
    "a", "an", "the", "to", "of", "and", "or", "in", "on", "at", "into", "with",
    "for", "from", "your", "you", "my", "i", "it", "is", "be", "that", "this",
})

# Share of a choice's content words the transcript must contain
MIN_OVERLAP = 0.5


def _words(text: str) -> list[str]:
    return re.findall(r"[a-z0-9']+", text.lower())


def _content_words(text: str) -> set[str]:
    return {w for w in _words(text) if len(w) > 2 and w not in _STOPWORDS}


def _ordinal_index(words: list[str]) -> int | None:
    core = [w for w in words if w not in _FILLER]
    # "the second one"
    if len(core) == 2 and core[1] == "one":
        core = core[:1]
    if len(core) == 1 and core[0] in ORDINALS:
        return ORDINALS[core[0]]
    return None


def match_choice(transcript: str, choices: list[Choice]) -> Choice | None:
    """Resolve a transcript to one of ``choices``.

    Tried in order: the choice id ("b", "option b"), an ordinal ("two",
    "the second one", "option 2"), then word overlap with the choice text.
    Returns None when nothing matches clearly; the caller treats the
    transcript as a free-text action.
    """
    if not choices:
        return None
    words = _words(transcript)
    if not words:
        return None

    core = [w for w in words if w not in _FILLER]
    by_id = {c.id.lower(): c for c in choices}
    if len(core) == 1 and core[0] in by_id:
        return by_id[core[0]]

    index = _ordinal_index(words)
    if index is not None and index < len(choices):
        return choices[index]

    spoken = set(words)
    best: Choice | None = None
    best_score = 0.0
    tied = False
    for choice in choices:
        target = _content_words(choice.text)
        if not target:
            continue
        score = len(target & spoken) / len(target)
        if score > best_score:
            best, best_score, tied = choice, score, False
        elif score == best_score and score > 0:
            tied = True
    if best is not None and best_score >= MIN_OVERLAP and not tied:
        return best
    return None
